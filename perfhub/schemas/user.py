from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

RoleName = Literal["super_admin", "admin", "hr_manager", "manager", "employee"]


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    code: str | None = Field(default=None, max_length=50)
    designation: str | None = Field(default=None, max_length=255)
    date_of_joining: date | None = None
    mobile_number: str | None = Field(default=None, max_length=50)

    # super_admin only; admins always create users in their own company
    company_id: str | None = None
    reporting_manager_id: str | None = None
    department_id: str | None = None
    location_id: str | None = None
    level_id: str | None = None
    grade_id: str | None = None

    role: RoleName = "employee"
    roles: list[RoleName] = Field(default_factory=list)
    status: Literal["active", "inactive"] = "active"

    @model_validator(mode="after")
    def primary_role_is_held(self):
        if self.role not in self.roles:
            self.roles = [self.role, *self.roles]
        return self


class UserUpdate(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    code: str | None = Field(default=None, max_length=50)
    designation: str | None = Field(default=None, max_length=255)
    date_of_joining: date | None = None
    mobile_number: str | None = Field(default=None, max_length=50)
    reporting_manager_id: str | None = None
    department_id: str | None = None
    location_id: str | None = None
    level_id: str | None = None
    grade_id: str | None = None
    role: RoleName | None = None
    roles: list[RoleName] | None = None
    status: Literal["active", "inactive"] | None = None


class UserOut(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str | None
    full_name: str
    code: str | None
    designation: str | None
    date_of_joining: date | None
    mobile_number: str | None
    company_id: str | None
    reporting_manager_id: str | None
    department_id: str | None
    location_id: str | None
    level_id: str | None
    grade_id: str | None
    role: str
    roles: list[str]
    status: str
    created_at: datetime
    updated_at: datetime
