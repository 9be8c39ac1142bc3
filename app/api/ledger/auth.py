from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_ledger_user
from app.core.security import create_jwt
from app.db.session import get_db
from app.models.user import User
from app.schemas.ledger import OtpRequest, OtpVerify
from app.services.otp_service import InvalidOrExpired, NotOnboarded, request_code, verify_code
from app.services.phone import normalize_phone_number
from app.services.rate_limit import check_otp_limits, get_rate_limiter
from app.services.whatsapp_client import WhatsAppDeliveryError

_LOG = logging.getLogger("app.otp")

router = APIRouter()

NOT_ACTIVE_DETAIL = "Number not active on PinMe. Please start a chat on WhatsApp first."
INVALID_CODE_DETAIL = "Invalid or expired code."
SEND_FAILED_DETAIL = "Failed to send OTP. Please try again."


def _client_ip(request: Request) -> str:
    xff = str(request.headers.get("x-forwarded-for") or "").strip()
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    client = request.client
    return str(client.host if client else "unknown")


def _rate_limit_or_429(action: str, *, request: Request, phone: str) -> None:
    exceeded = check_otp_limits(get_rate_limiter(), action, client_ip=_client_ip(request), phone=phone or None)
    if exceeded is not None:
        raise HTTPException(
            status_code=429,
            detail=f"Too many attempts. Try again in {max(exceeded.retry_after_seconds, 1)} seconds.",
        )


def _set_session_cookie(response: Response, *, user_id: str, phone_number: str) -> None:
    token = create_jwt(
        {"sub": user_id, "phone_number": phone_number},
        settings.LEDGER_JWT_SECRET,
        timedelta(days=settings.LEDGER_JWT_TTL_DAYS),
    )
    response.set_cookie(
        key=settings.LEDGER_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        max_age=settings.LEDGER_JWT_TTL_DAYS * 24 * 3600,
    )


@router.post("/request-otp")
def request_otp(payload: OtpRequest, request: Request, db: Session = Depends(get_db)):
    phone = normalize_phone_number(payload.phone_number)
    if not phone:
        raise HTTPException(status_code=400, detail="Phone number is required")
    _rate_limit_or_429("send", request=request, phone=phone)

    try:
        request_code(db, phone)
    except NotOnboarded:
        raise HTTPException(status_code=400, detail=NOT_ACTIVE_DETAIL)
    except WhatsAppDeliveryError as exc:
        _LOG.warning("otp delivery failed: %s", exc)
        raise HTTPException(status_code=502, detail=SEND_FAILED_DETAIL) from exc
    return {"success": True, "ttl_seconds": int(settings.OTP_TTL_MINUTES) * 60}


@router.post("/verify-otp")
def verify_otp(payload: OtpVerify, request: Request, response: Response, db: Session = Depends(get_db)):
    phone = normalize_phone_number(payload.phone_number)
    _rate_limit_or_429("verify", request=request, phone=phone)

    try:
        identity = verify_code(db, phone, payload.code)
    except InvalidOrExpired:
        raise HTTPException(status_code=400, detail=INVALID_CODE_DETAIL)

    _set_session_cookie(response, user_id=str(identity.user_id), phone_number=identity.phone_number)
    return {"success": True}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(settings.LEDGER_COOKIE_NAME)
    return {"success": True}


@router.get("/check-auth")
def check_auth(user: User = Depends(get_ledger_user)):
    return {
        "authenticated": True,
        "user": {"name": user.name, "phone_number": user.phone_number},
    }
