from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.deps import get_ledger_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.ledger import ReminderCreate, ReminderList, ReminderRead, ReminderUpdate
from app.services.reminders import (
    InvalidReminder,
    NotFound,
    ReminderNotPending,
    cancel_reminder,
    create_reminder,
    list_reminders,
    serialize_reminder,
    update_reminder,
)

router = APIRouter()


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail="Reminder not found")
    if isinstance(exc, ReminderNotPending):
        return HTTPException(status_code=409, detail="Reminder was already sent or cancelled")
    return HTTPException(status_code=400, detail=str(exc))


@router.get("", response_model=ReminderList)
def get_reminders(
    include_sent: bool = False,
    limit: int = 10,
    user: User = Depends(get_ledger_user),
    db: Session = Depends(get_db),
):
    result = list_reminders(db, user_id=user.id, include_sent=include_sent, limit=min(max(limit, 1), 100))
    return {
        "items": [serialize_reminder(row) for row in result["items"]],
        "total_pending": result["total_pending"],
    }


@router.post("", response_model=ReminderRead, status_code=201)
def post_reminder(payload: ReminderCreate, user: User = Depends(get_ledger_user), db: Session = Depends(get_db)):
    try:
        row = create_reminder(db, user_id=user.id, text=payload.text, remind_at=payload.remind_at)
    except InvalidReminder as exc:
        raise _http_error(exc) from exc
    return serialize_reminder(row)


@router.patch("/{reminder_id}", response_model=ReminderRead)
def patch_reminder(
    reminder_id: UUID,
    payload: ReminderUpdate,
    user: User = Depends(get_ledger_user),
    db: Session = Depends(get_db),
):
    try:
        row = update_reminder(
            db,
            user_id=user.id,
            reminder_id=reminder_id,
            text=payload.text,
            remind_at=payload.remind_at,
        )
    except (InvalidReminder, NotFound, ReminderNotPending) as exc:
        raise _http_error(exc) from exc
    return serialize_reminder(row)


@router.post("/{reminder_id}/cancel", response_model=ReminderRead)
def post_cancel_reminder(reminder_id: UUID, user: User = Depends(get_ledger_user), db: Session = Depends(get_db)):
    try:
        row = cancel_reminder(db, user_id=user.id, reminder_id=reminder_id)
    except (NotFound, ReminderNotPending) as exc:
        raise _http_error(exc) from exc
    return serialize_reminder(row)
