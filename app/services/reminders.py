from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.common import as_utc
from app.models.reminder import Reminder

_LOG = logging.getLogger("app.reminders")

STATUS_CANCELLED = "CANCELLED"
STATUS_SENT = "SENT"
STATUS_UPCOMING = "UPCOMING"
STATUS_OVERDUE = "OVERDUE"

REMINDER_TEXT_MAX_LEN = 1000


class ReminderError(Exception):
    pass


class NotFound(ReminderError):
    pass


class InvalidReminder(ReminderError):
    pass


class ReminderNotPending(ReminderError):
    pass


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def compute_reminder_status(
    *,
    sent_at: datetime | None,
    cancelled_at: datetime | None,
    remind_at: datetime,
    now: datetime,
) -> str:
    if cancelled_at is not None:
        return STATUS_CANCELLED
    if sent_at is not None:
        return STATUS_SENT
    if as_utc(remind_at) > as_utc(now):
        return STATUS_UPCOMING
    return STATUS_OVERDUE


def reminder_status(row: Reminder, now: datetime | None = None) -> str:
    return compute_reminder_status(
        sent_at=row.sent_at,
        cancelled_at=row.cancelled_at,
        remind_at=row.remind_at,
        now=now or _now_utc(),
    )


def build_reminder_message(text: str, user_name: str | None) -> str:
    name = str(user_name or "").strip()
    first_name = name.split()[0] if name else settings.REMINDER_FALLBACK_NAME
    return f"Ping ping ⚡ {first_name}, {str(text or '').strip()} karna tha abhi yaad hai?"


def serialize_reminder(row: Reminder, now: datetime | None = None) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "text": row.text,
        "remind_at": as_utc(row.remind_at).isoformat(),
        "created_at": as_utc(row.created_at).isoformat() if row.created_at else None,
        "sent_at": as_utc(row.sent_at).isoformat() if row.sent_at else None,
        "cancelled_at": as_utc(row.cancelled_at).isoformat() if row.cancelled_at else None,
        "status": reminder_status(row, now),
    }


def _clean_text(raw: str | None) -> str:
    text = str(raw or "").strip()
    if not text:
        raise InvalidReminder("Reminder text is required")
    if len(text) > REMINDER_TEXT_MAX_LEN:
        raise InvalidReminder(f"Reminder text is longer than {REMINDER_TEXT_MAX_LEN} characters")
    return text


def _future_remind_at(raw: datetime | None, now: datetime) -> datetime:
    if raw is None:
        raise InvalidReminder("Reminder time is required")
    remind_at = as_utc(raw)
    if remind_at <= now:
        raise InvalidReminder("Reminder time must be in the future")
    return remind_at


def _owned_reminder(db: Session, user_id: uuid.UUID, reminder_id: uuid.UUID) -> Reminder:
    row = db.get(Reminder, reminder_id)
    if row is None or row.user_id != user_id:
        raise NotFound("Reminder not found")
    return row


def create_reminder(
    db: Session,
    *,
    user_id: uuid.UUID,
    text: str,
    remind_at: datetime,
    now: datetime | None = None,
) -> Reminder:
    now = now or _now_utc()
    row = Reminder(
        user_id=user_id,
        text=_clean_text(text),
        remind_at=_future_remind_at(remind_at, now),
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    _LOG.info("reminder created id=%s remind_at=%s", row.id, row.remind_at)
    return row


def list_reminders(
    db: Session,
    *,
    user_id: uuid.UUID,
    include_sent: bool = False,
    limit: int = 10,
) -> dict[str, Any]:
    query = select(Reminder).where(Reminder.user_id == user_id)
    if not include_sent:
        query = query.where(Reminder.sent_at.is_(None), Reminder.cancelled_at.is_(None))
    rows = db.execute(query.order_by(Reminder.remind_at.asc()).limit(max(int(limit), 1))).scalars().all()
    total_pending = db.execute(
        select(func.count(Reminder.id)).where(
            Reminder.user_id == user_id,
            Reminder.sent_at.is_(None),
            Reminder.cancelled_at.is_(None),
        )
    ).scalar_one()
    return {"items": list(rows), "total_pending": int(total_pending or 0)}


def update_reminder(
    db: Session,
    *,
    user_id: uuid.UUID,
    reminder_id: uuid.UUID,
    text: str | None = None,
    remind_at: datetime | None = None,
    now: datetime | None = None,
) -> Reminder:
    """Edit a pending reminder.

    Racing a dispatch tick that already picked this reminder is last write
    wins on the row: the old text may still go out once.
    """
    now = now or _now_utc()
    row = _owned_reminder(db, user_id, reminder_id)
    values: dict[str, Any] = {"updated_at": now}
    if text is not None:
        values["text"] = _clean_text(text)
    if remind_at is not None:
        values["remind_at"] = _future_remind_at(remind_at, now)
        values["attempts"] = 0
        values["last_attempt_at"] = None

    changed = db.execute(
        update(Reminder)
        .where(
            Reminder.id == row.id,
            Reminder.sent_at.is_(None),
            Reminder.cancelled_at.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    if int(changed or 0) != 1:
        raise ReminderNotPending("Reminder was already sent or cancelled")
    db.refresh(row)
    return row


def cancel_reminder(
    db: Session,
    *,
    user_id: uuid.UUID,
    reminder_id: uuid.UUID,
    now: datetime | None = None,
) -> Reminder:
    """Cancel a pending reminder.

    A tick that already sent the message before this write lands wins; the
    conditional update then matches nothing and the reminder stays SENT.
    """
    now = now or _now_utc()
    row = _owned_reminder(db, user_id, reminder_id)
    changed = db.execute(
        update(Reminder)
        .where(
            Reminder.id == row.id,
            Reminder.sent_at.is_(None),
            Reminder.cancelled_at.is_(None),
        )
        .values(cancelled_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    if int(changed or 0) != 1:
        raise ReminderNotPending("Reminder was already sent or cancelled")
    db.refresh(row)
    _LOG.info("reminder cancelled id=%s", row.id)
    return row
