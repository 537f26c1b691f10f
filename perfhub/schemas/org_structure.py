from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Status = Literal["active", "inactive"]


class LocationCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    state: str | None = Field(default=None, max_length=255)
    country: str | None = Field(default=None, max_length=255)
    status: Status = "active"


class LocationUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    state: str | None = Field(default=None, max_length=255)
    country: str | None = Field(default=None, max_length=255)
    status: Status | None = None


class LocationOut(BaseModel):
    id: str
    company_id: str
    code: str
    name: str
    state: str | None
    country: str | None
    status: str
    created_at: datetime
    updated_at: datetime


# Level, Grade, Department and ReviewFrequency share one shape
class MasterDataCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    description: str = Field(min_length=1, max_length=500)
    status: Status = "active"


class MasterDataUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    description: str | None = Field(default=None, min_length=1, max_length=500)
    status: Status | None = None


class MasterDataOut(BaseModel):
    id: str
    company_id: str
    code: str
    description: str
    status: str
    created_at: datetime
    updated_at: datetime
