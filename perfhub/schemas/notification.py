from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

TemplateType = Literal["appraisal_initiated", "appraisal_reminder", "meeting_scheduled", "test"]


class EmailConfigCreate(BaseModel):
    smtp_host: str = Field(min_length=1, max_length=255)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_username: str = Field(min_length=1, max_length=255)
    smtp_password: str = Field(min_length=1, max_length=255)
    from_email: str = Field(min_length=3, max_length=320)
    from_name: str = Field(default="Performance Hub", max_length=255)
    is_active: bool = True


class EmailConfigUpdate(BaseModel):
    smtp_host: str | None = Field(default=None, min_length=1, max_length=255)
    smtp_port: int | None = Field(default=None, ge=1, le=65535)
    smtp_username: str | None = Field(default=None, min_length=1, max_length=255)
    smtp_password: str | None = Field(default=None, min_length=1, max_length=255)
    from_email: str | None = Field(default=None, min_length=3, max_length=320)
    from_name: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None


class EmailConfigOut(BaseModel):
    # password is write-only
    id: str
    smtp_host: str
    smtp_port: int
    smtp_username: str
    from_email: str
    from_name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class EmailTestPayload(BaseModel):
    to_email: str = Field(min_length=3, max_length=320)


class EmailSendOut(BaseModel):
    sent: bool
    skipped: bool = False
    error: str | None = None


class EmailTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    subject: str = Field(min_length=1, max_length=500)
    body: str = Field(min_length=1)
    template_type: TemplateType
    # super_admin only
    is_global: bool = False


class EmailTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    subject: str | None = Field(default=None, min_length=1, max_length=500)
    body: str | None = Field(default=None, min_length=1)


class EmailTemplateOut(BaseModel):
    id: str
    company_id: str | None
    name: str
    subject: str
    body: str
    template_type: str
    created_at: datetime
    updated_at: datetime


class CalendarCredentialCreate(BaseModel):
    provider: Literal["google", "outlook"]
    client_id: str = Field(min_length=1, max_length=500)
    client_secret: str = Field(min_length=1, max_length=500)
    refresh_token: str = Field(min_length=1)
    access_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = Field(default=None, max_length=1000)
    is_active: bool = True


class CalendarCredentialUpdate(BaseModel):
    client_id: str | None = Field(default=None, min_length=1, max_length=500)
    client_secret: str | None = Field(default=None, min_length=1, max_length=500)
    refresh_token: str | None = Field(default=None, min_length=1)
    access_token: str | None = None
    expires_at: datetime | None = None
    scope: str | None = Field(default=None, max_length=1000)
    is_active: bool | None = None


class CalendarCredentialOut(BaseModel):
    # secrets and tokens are write-only
    id: str
    company_id: str
    provider: str
    client_id: str
    has_access_token: bool
    expires_at: datetime | None
    scope: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CalendarStatusOut(BaseModel):
    provider: str  # google | outlook | ics
    connected: bool
