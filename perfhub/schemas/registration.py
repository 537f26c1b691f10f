from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class RegistrationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    company_name: str = Field(min_length=1, max_length=255)
    designation: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    mobile: str = Field(min_length=5, max_length=50)


class RegistrationUpdate(BaseModel):
    status: Literal["pending", "contacted", "approved", "rejected"] | None = None
    notes: str | None = None


class RegistrationOut(BaseModel):
    id: str
    name: str
    company_name: str
    designation: str
    email: str
    mobile: str
    status: str
    notification_sent: bool
    notes: str | None
    created_at: datetime
    updated_at: datetime
