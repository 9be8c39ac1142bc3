from __future__ import annotations

import logging

from app.core.config import settings
from app.db.session import SessionLocal
from app.services.reminder_dispatch import poll_once
from app.services.tick_lock import get_tick_lock
from app.workers.celery_app import celery_app

_LOG = logging.getLogger("app.reminders")

TICK_LOCK_KEY = "reminders:dispatch:tick"
# connect, write and read each get the full WhatsApp timeout.
HTTP_TIMEOUT_PHASES = 3
TICK_LOCK_MARGIN_SECONDS = 60


def tick_lock_ttl_seconds() -> int:
    worst_case = (
        int(settings.REMINDER_BATCH_SIZE) * float(settings.WHATSAPP_TIMEOUT_SECONDS) * HTTP_TIMEOUT_PHASES
        + TICK_LOCK_MARGIN_SECONDS
    )
    return max(int(settings.REMINDER_TICK_LOCK_SECONDS), int(worst_case))


@celery_app.task(name="app.workers.tasks.reminders.dispatch_due_reminders")
def dispatch_due_reminders():
    lock = get_tick_lock()
    token = lock.acquire(TICK_LOCK_KEY, ttl_seconds=tick_lock_ttl_seconds())
    if token is None:
        _LOG.info("previous reminder tick still running, skipping")
        return {"skipped_tick": True}

    db = SessionLocal()
    try:
        return poll_once(db, limit=int(settings.REMINDER_BATCH_SIZE))
    except Exception:
        db.rollback()
        _LOG.exception("reminder tick failed")
        raise
    finally:
        db.close()
        lock.release(TICK_LOCK_KEY, token)
