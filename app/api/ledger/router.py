from fastapi import APIRouter
from app.api.ledger import auth, data, reminders

router = APIRouter()
router.include_router(auth.router, tags=["LedgerAuth"])
router.include_router(data.router, tags=["Ledger"])
router.include_router(reminders.router, prefix="/reminders", tags=["Reminders"])
