from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import hash_code
from app.models.login_token import LoginToken
from app.models.user import User
from app.services.phone import normalize_phone_number
from app.services.whatsapp_client import send_text_message

_LOG = logging.getLogger("app.otp")

OTP_CODE_MIN = 100_000
OTP_CODE_SPAN = 900_000


class OtpError(Exception):
    pass


class NotOnboarded(OtpError):
    pass


class InvalidOrExpired(OtpError):
    pass


@dataclass(frozen=True)
class VerifiedIdentity:
    user_id: uuid.UUID
    phone_number: str
    name: str | None


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _ttl() -> timedelta:
    return timedelta(minutes=max(int(settings.OTP_TTL_MINUTES), 1))


def generate_code() -> str:
    return str(OTP_CODE_MIN + secrets.randbelow(OTP_CODE_SPAN))


def _build_otp_message(code: str) -> str:
    minutes = int(_ttl().total_seconds() // 60)
    return (
        f"🔐 Your PinMe ledger login code is: *{code}*\n\n"
        f"Valid for {minutes} minutes. Don't share it with anyone."
    )


def _phone_hint(phone: str) -> str:
    return f"***{phone[-4:]}" if len(phone) > 4 else "***"


def request_code(db: Session, phone_number: str, *, now: datetime | None = None) -> dict:
    """Issue a fresh login code for an onboarded user and send it over WhatsApp.

    Older live codes for the same phone are expired in the same transaction
    that stores the new one, under a lock on the user row, so only the latest
    code can ever verify, even for concurrent requests. The token is
    committed before delivery: a transport failure propagates as
    WhatsAppDeliveryError but the issued token stays in place.
    """
    phone = normalize_phone_number(phone_number)
    # Row lock serializes concurrent requests for one phone until commit.
    user = (
        db.execute(select(User).where(User.phone_number == phone).with_for_update()).scalar_one_or_none()
        if phone
        else None
    )
    if user is None or not user.onboarded:
        raise NotOnboarded("Number not active on PinMe")

    now = now or _now_utc()
    code = generate_code()

    invalidated = db.execute(
        update(LoginToken)
        .where(
            LoginToken.phone_number == phone,
            LoginToken.used_at.is_(None),
            LoginToken.expires_at > now,
        )
        .values(expires_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    token = LoginToken(
        phone_number=phone,
        code_hash=hash_code(code),
        expires_at=now + _ttl(),
        created_at=now,
        updated_at=now,
    )
    db.add(token)
    db.commit()
    _LOG.info("otp issued phone=%s invalidated=%s", _phone_hint(phone), int(invalidated or 0))

    delivery = send_text_message(phone, _build_otp_message(code))
    return {
        "status": "sent",
        "expires_at": token.expires_at,
        "ttl_seconds": int(_ttl().total_seconds()),
        "provider": delivery.get("provider"),
    }


def verify_code(db: Session, phone_number: str, submitted_code: str, *, now: datetime | None = None) -> VerifiedIdentity:
    phone = normalize_phone_number(phone_number)
    code = str(submitted_code or "").strip()
    if not phone or not code:
        raise InvalidOrExpired("Invalid or expired code")

    now = now or _now_utc()
    token = db.execute(
        select(LoginToken)
        .where(
            LoginToken.phone_number == phone,
            LoginToken.code_hash == hash_code(code),
            LoginToken.used_at.is_(None),
            LoginToken.expires_at > now,
        )
        .order_by(LoginToken.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if token is None:
        raise InvalidOrExpired("Invalid or expired code")

    # Conditional consume: a concurrent verify of the same code updates zero rows.
    consumed = db.execute(
        update(LoginToken)
        .where(
            LoginToken.id == token.id,
            LoginToken.used_at.is_(None),
            LoginToken.expires_at > now,
        )
        .values(used_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    if int(consumed or 0) != 1:
        raise InvalidOrExpired("Invalid or expired code")

    user = db.execute(select(User).where(User.phone_number == phone)).scalar_one_or_none()
    if user is None:
        raise InvalidOrExpired("Invalid or expired code")

    _LOG.info("otp verified phone=%s", _phone_hint(phone))
    return VerifiedIdentity(user_id=user.id, phone_number=user.phone_number, name=user.name)


def cleanup_expired_tokens(db: Session, *, now: datetime | None = None) -> dict[str, int]:
    now = now or _now_utc()
    total = db.execute(select(func.count(LoginToken.id))).scalar_one()
    deleted = db.execute(
        delete(LoginToken)
        .where(or_(LoginToken.expires_at <= now, LoginToken.used_at.is_not(None)))
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    return {"checked": int(total), "deleted": int(deleted or 0)}
