from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class AppraisalGroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    status: Literal["active", "inactive"] = "active"
    member_ids: list[str] = Field(default_factory=list)


class AppraisalGroupUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    status: Literal["active", "inactive"] | None = None


class AddMembersPayload(BaseModel):
    user_ids: list[str] = Field(min_length=1)


class GroupMemberOut(BaseModel):
    user_id: str
    email: str
    full_name: str
    code: str | None
    status: str
    added_at: datetime


class AppraisalGroupOut(BaseModel):
    id: str
    company_id: str
    name: str
    description: str | None
    status: str
    member_count: int
    members: list[GroupMemberOut] = []
    created_at: datetime
    updated_at: datetime
