from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OtpRequest(BaseModel):
    phone_number: str = Field(min_length=1, max_length=32)


class OtpVerify(BaseModel):
    phone_number: str = Field(min_length=1, max_length=32)
    code: str = Field(min_length=1, max_length=12)


class ReminderCreate(BaseModel):
    text: str = Field(min_length=1, max_length=1000)
    remind_at: datetime


class ReminderUpdate(BaseModel):
    text: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    remind_at: Optional[datetime] = None


class ReminderRead(BaseModel):
    id: str
    text: str
    remind_at: str
    created_at: Optional[str] = None
    sent_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    status: str


class ReminderList(BaseModel):
    items: list[ReminderRead]
    total_pending: int
