import uuid

from fastapi import Cookie, Depends, HTTPException
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.security import decode_jwt
from app.db.session import get_db
from app.models.user import User

def get_ledger_session(ledger_jwt: str | None = Cookie(default=None, alias=settings.LEDGER_COOKIE_NAME)) -> dict:
    if not ledger_jwt:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return decode_jwt(ledger_jwt, settings.LEDGER_JWT_SECRET)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

def get_ledger_user(session: dict = Depends(get_ledger_session), db: Session = Depends(get_db)) -> User:
    try:
        user_id = uuid.UUID(str(session.get("sub") or ""))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user
