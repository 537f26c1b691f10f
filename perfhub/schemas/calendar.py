from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

Status = Literal["active", "inactive"]


class AppraisalCycleCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    description: str = Field(min_length=1, max_length=500)
    from_date: date
    to_date: date
    status: Status = "active"

    @model_validator(mode="after")
    def check_range(self):
        if self.to_date < self.from_date:
            raise ValueError("to_date must be on or after from_date")
        return self


class AppraisalCycleUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    description: str | None = Field(default=None, min_length=1, max_length=500)
    from_date: date | None = None
    to_date: date | None = None
    status: Status | None = None


class AppraisalCycleOut(BaseModel):
    id: str
    company_id: str
    code: str
    description: str
    from_date: date
    to_date: date
    status: str
    created_at: datetime
    updated_at: datetime


class FrequencyCalendarDetailCreate(BaseModel):
    display_name: str = Field(min_length=1, max_length=200)
    start_date: date
    end_date: date
    status: Status = "active"

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class FrequencyCalendarDetailStandaloneCreate(FrequencyCalendarDetailCreate):
    frequency_calendar_id: str


class FrequencyCalendarDetailUpdate(BaseModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=200)
    start_date: date | None = None
    end_date: date | None = None
    status: Status | None = None


class FrequencyCalendarDetailOut(BaseModel):
    id: str
    frequency_calendar_id: str
    display_name: str
    start_date: date
    end_date: date
    status: str
    created_at: datetime
    updated_at: datetime


class FrequencyCalendarCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    description: str = Field(min_length=1, max_length=500)
    appraisal_cycle_id: str
    review_frequency_id: str
    status: Status = "active"
    details: list[FrequencyCalendarDetailCreate] = Field(default_factory=list)


class FrequencyCalendarUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    description: str | None = Field(default=None, min_length=1, max_length=500)
    appraisal_cycle_id: str | None = None
    review_frequency_id: str | None = None
    status: Status | None = None


class FrequencyCalendarOut(BaseModel):
    id: str
    company_id: str
    code: str
    description: str
    appraisal_cycle_id: str
    review_frequency_id: str
    status: str
    details: list[FrequencyCalendarDetailOut] = []
    created_at: datetime
    updated_at: datetime
