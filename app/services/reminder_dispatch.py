from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.reminder import Reminder
from app.models.user import User
from app.services.reminders import build_reminder_message
from app.services.whatsapp_client import send_text_message

_LOG = logging.getLogger("app.reminders")


@dataclass(frozen=True)
class _Candidate:
    reminder_id: uuid.UUID
    text: str
    phone_number: str
    user_name: str | None


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def fetch_due_candidates(db: Session, *, now: datetime, limit: int) -> list[_Candidate]:
    """Oldest due reminders first, with previously failed ones behind untried ones.

    Failed reminders rotate by last attempt, so a batch full of undeliverable
    rows cannot starve reminders that were never tried.
    """
    rows = db.execute(
        select(Reminder.id, Reminder.text, User.phone_number, User.name)
        .join(User, User.id == Reminder.user_id)
        .where(
            Reminder.sent_at.is_(None),
            Reminder.cancelled_at.is_(None),
            Reminder.remind_at <= now,
        )
        .order_by(
            Reminder.last_attempt_at.is_not(None),
            Reminder.last_attempt_at.asc(),
            Reminder.remind_at.asc(),
        )
        .limit(max(int(limit), 1))
    ).all()
    return [_Candidate(reminder_id=r[0], text=r[1], phone_number=r[2], user_name=r[3]) for r in rows]


def _still_pending(db: Session, reminder_id: uuid.UUID) -> bool:
    row = db.execute(
        select(Reminder.sent_at, Reminder.cancelled_at).where(Reminder.id == reminder_id)
    ).first()
    return row is not None and row[0] is None and row[1] is None


def _mark_sent(db: Session, reminder_id: uuid.UUID, sent_at: datetime) -> bool:
    marked = db.execute(
        update(Reminder)
        .where(
            Reminder.id == reminder_id,
            Reminder.sent_at.is_(None),
            Reminder.cancelled_at.is_(None),
        )
        .values(sent_at=sent_at, updated_at=sent_at)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    return int(marked or 0) == 1


def _record_failed_attempt(db: Session, reminder_id: uuid.UUID, attempted_at: datetime) -> None:
    db.execute(
        update(Reminder)
        .where(Reminder.id == reminder_id, Reminder.sent_at.is_(None))
        .values(attempts=Reminder.attempts + 1, last_attempt_at=attempted_at)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def dispatch_candidate(db: Session, candidate: _Candidate, *, now: datetime | None = None) -> str:
    """Send one reminder and mark it sent only after the transport accepted it.

    Returns "sent" or "skipped"; transport and store errors propagate so the
    caller can leave the reminder pending for the next tick.
    """
    if not candidate.phone_number:
        _LOG.warning("reminder %s has no owner phone, skipping", candidate.reminder_id)
        _record_failed_attempt(db, candidate.reminder_id, now or _now_utc())
        return "skipped"
    if not _still_pending(db, candidate.reminder_id):
        return "skipped"

    send_text_message(candidate.phone_number, build_reminder_message(candidate.text, candidate.user_name))

    # A crash between send and mark means one duplicate next tick, never a lost reminder.
    if not _mark_sent(db, candidate.reminder_id, now or _now_utc()):
        _LOG.warning("reminder %s changed during dispatch, sent_at left as is", candidate.reminder_id)
        return "skipped"
    _LOG.info("reminder %s sent", candidate.reminder_id)
    return "sent"


def poll_once(db: Session, *, now: datetime | None = None, limit: int | None = None) -> dict[str, int]:
    tick_at = now or _now_utc()
    batch = int(limit if limit is not None else settings.REMINDER_BATCH_SIZE)
    candidates = fetch_due_candidates(db, now=tick_at, limit=batch)
    db.commit()
    if candidates:
        _LOG.info("found %s due reminder(s)", len(candidates))

    stats = {"checked": len(candidates), "sent": 0, "failed": 0, "skipped": 0}
    for candidate in candidates:
        try:
            outcome = dispatch_candidate(db, candidate, now=now)
        except Exception:
            db.rollback()
            stats["failed"] += 1
            _LOG.exception("failed to dispatch reminder %s, will retry next tick", candidate.reminder_id)
            try:
                _record_failed_attempt(db, candidate.reminder_id, tick_at)
            except Exception:
                db.rollback()
                _LOG.exception("could not record failed attempt for reminder %s", candidate.reminder_id)
            continue
        stats[outcome] += 1
    return stats
