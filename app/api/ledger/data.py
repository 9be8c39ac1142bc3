from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_ledger_user
from app.db.session import get_db
from app.models.user import User
from app.services.ledger_summary import build_ledger_summary

router = APIRouter()


@router.get("/data")
def get_ledger_data(user: User = Depends(get_ledger_user), db: Session = Depends(get_db)):
    return build_ledger_summary(db, user)
