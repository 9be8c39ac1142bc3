import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.models.common import TimestampMixin, UUIDMixin


class Expense(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "expenses"

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="OTHER", index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_reimbursement: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expense_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
