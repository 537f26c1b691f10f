from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Status = Literal["active", "inactive"]


class CompanyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    address: str | None = Field(default=None, max_length=1000)
    client_contact: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    contact_number: str | None = Field(default=None, max_length=50)
    gst_number: str | None = Field(default=None, max_length=50)
    logo_url: str | None = Field(default=None, max_length=1000)
    url: str | None = Field(default=None, max_length=500)
    company_url: str | None = Field(default=None, max_length=255)
    status: Status = "active"


class CompanyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    address: str | None = Field(default=None, max_length=1000)
    client_contact: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    contact_number: str | None = Field(default=None, max_length=50)
    gst_number: str | None = Field(default=None, max_length=50)
    logo_url: str | None = Field(default=None, max_length=1000)
    url: str | None = Field(default=None, max_length=500)
    company_url: str | None = Field(default=None, max_length=255)
    status: Status | None = None


class CompanyOut(BaseModel):
    id: str
    name: str
    address: str | None
    client_contact: str | None
    email: str | None
    contact_number: str | None
    gst_number: str | None
    logo_url: str | None
    url: str | None
    company_url: str | None
    status: str
    created_at: datetime
    updated_at: datetime
