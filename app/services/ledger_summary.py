from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.common import as_utc
from app.models.expense import Expense
from app.models.idea_item import IdeaItem
from app.models.reminder import Reminder
from app.models.user import User
from app.services.reminders import serialize_reminder

EXPENSE_WINDOW = 100
TRANSACTIONS_LIMIT = 50
DAYS_LIMIT = 30
REMINDERS_LIMIT = 50
IDEAS_LIMIT = 50


def _zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(str(name or settings.DEFAULT_TIMEZONE))
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(settings.DEFAULT_TIMEZONE)


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01")))


def reminders_overview(db: Session, user_id: uuid.UUID, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    rows = db.execute(
        select(Reminder)
        .where(Reminder.user_id == user_id)
        .order_by(Reminder.created_at.desc())
        .limit(REMINDERS_LIMIT)
    ).scalars().all()
    total = db.execute(select(func.count(Reminder.id)).where(Reminder.user_id == user_id)).scalar_one()
    return {"total": int(total or 0), "items": [serialize_reminder(row, now) for row in rows]}


def ideas_overview(db: Session, user_id: uuid.UUID) -> dict[str, Any]:
    rows = db.execute(
        select(IdeaItem)
        .where(IdeaItem.user_id == user_id)
        .order_by(IdeaItem.created_at.desc())
        .limit(IDEAS_LIMIT)
    ).scalars().all()
    total = db.execute(select(func.count(IdeaItem.id)).where(IdeaItem.user_id == user_id)).scalar_one()
    return {
        "total": int(total or 0),
        "items": [
            {
                "id": str(row.id),
                "content": row.content,
                "source_url": row.source_url,
                "tags": list(row.tags or []),
                "created_at": as_utc(row.created_at).isoformat() if row.created_at else None,
            }
            for row in rows
        ],
    }


def build_ledger_summary(db: Session, user: User, *, now: datetime | None = None) -> dict[str, Any]:
    """Aggregate the latest expenses of a user for the read-only web ledger."""
    zone = _zone(user.timezone)
    expenses = db.execute(
        select(Expense)
        .where(Expense.user_id == user.id)
        .order_by(Expense.expense_datetime.desc())
        .limit(EXPENSE_WINDOW)
    ).scalars().all()

    total = Decimal("0")
    since: datetime | None = None
    by_category: dict[str, dict[str, Any]] = defaultdict(lambda: {"total": Decimal("0"), "count": 0})
    by_day: dict[str, dict[str, Any]] = defaultdict(lambda: {"total": Decimal("0"), "count": 0})

    for expense in expenses:
        amount = Decimal(expense.amount or 0)
        happened_at = as_utc(expense.expense_datetime)
        total += amount
        if since is None or happened_at < since:
            since = happened_at
        by_category[expense.category]["total"] += amount
        by_category[expense.category]["count"] += 1
        day_key = happened_at.astimezone(zone).strftime("%Y-%m-%d")
        by_day[day_key]["total"] += amount
        by_day[day_key]["count"] += 1

    days = sorted(by_day.items(), key=lambda item: item[0], reverse=True)[:DAYS_LIMIT]
    return {
        "user": {"name": user.name, "phone_number": user.phone_number},
        "summary": {
            "total_amount": _money(total),
            "currency": settings.DEFAULT_CURRENCY,
            "since": since.isoformat() if since else None,
            "expense_count": len(expenses),
        },
        "by_category": [
            {"category": category, "total_amount": _money(data["total"]), "count": data["count"]}
            for category, data in by_category.items()
        ],
        "by_day": [
            {"date": day, "total_amount": _money(data["total"]), "count": data["count"]}
            for day, data in days
        ],
        "transactions": [
            {
                "id": str(expense.id),
                "amount": _money(Decimal(expense.amount or 0)),
                "currency": expense.currency,
                "category": expense.category,
                "description": expense.description,
                "is_reimbursement": bool(expense.is_reimbursement),
                "created_at": as_utc(expense.created_at).isoformat() if expense.created_at else None,
                "expense_datetime": as_utc(expense.expense_datetime).isoformat(),
            }
            for expense in expenses[:TRANSACTIONS_LIMIT]
        ],
        "ideas": ideas_overview(db, user.id),
        "reminders": reminders_overview(db, user.id, now=now),
    }
