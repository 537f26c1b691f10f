from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

AppraisalType = Literal["questionnaire_based", "kpi_based", "mbo_based", "okr_based"]
PublishType = Literal["now", "as_per_calendar"]


class DetailTimingIn(BaseModel):
    frequency_calendar_detail_id: str
    days_to_initiate: int = Field(default=0, ge=0)
    days_to_close: int = Field(default=30, ge=0)
    number_of_reminders: int = Field(default=3, ge=0)


class DetailTimingOut(BaseModel):
    frequency_calendar_detail_id: str
    days_to_initiate: int
    days_to_close: int
    number_of_reminders: int


class InitiatedAppraisalCreate(BaseModel):
    appraisal_group_id: str
    appraisal_type: AppraisalType
    questionnaire_template_ids: list[str] = Field(default_factory=list)
    document_url: str | None = Field(default=None, max_length=1000)
    frequency_calendar_id: str | None = None
    days_to_initiate: int = Field(default=0, ge=0)
    days_to_close: int = Field(default=30, ge=0)
    number_of_reminders: int = Field(default=3, ge=0)
    exclude_tenure_less_than_year: bool = False
    excluded_employee_ids: list[str] = Field(default_factory=list)
    # anything other than "draft" launches immediately
    status: Literal["draft", "active"] = "active"
    make_public: bool = False
    publish_type: PublishType = "now"
    detail_timings: list[DetailTimingIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_shape(self):
        if self.appraisal_type == "questionnaire_based" and not self.questionnaire_template_ids:
            raise ValueError("questionnaire_based appraisals need at least one questionnaire template")
        if self.publish_type == "as_per_calendar" and not self.frequency_calendar_id:
            raise ValueError("frequency_calendar_id is required when publish_type is as_per_calendar")
        return self


class InitiatedAppraisalUpdate(BaseModel):
    appraisal_group_id: str | None = None
    appraisal_type: AppraisalType | None = None
    questionnaire_template_ids: list[str] | None = None
    document_url: str | None = Field(default=None, max_length=1000)
    frequency_calendar_id: str | None = None
    days_to_initiate: int | None = Field(default=None, ge=0)
    days_to_close: int | None = Field(default=None, ge=0)
    number_of_reminders: int | None = Field(default=None, ge=0)
    exclude_tenure_less_than_year: bool | None = None
    excluded_employee_ids: list[str] | None = None
    make_public: bool | None = None
    publish_type: PublishType | None = None


class InitiatedAppraisalOut(BaseModel):
    id: str
    company_id: str
    appraisal_group_id: str
    appraisal_group_name: str | None
    appraisal_type: str
    questionnaire_template_ids: list[str]
    document_url: str | None
    frequency_calendar_id: str | None
    days_to_initiate: int
    days_to_close: int
    number_of_reminders: int
    exclude_tenure_less_than_year: bool
    excluded_employee_ids: list[str]
    status: str
    make_public: bool
    publish_type: str
    detail_timings: list[DetailTimingOut] = []
    launched_at: datetime | None
    closed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class SkippedEmployee(BaseModel):
    user_id: str
    reason: str


class LaunchSummary(BaseModel):
    evaluations_created: int = 0
    already_existing: int = 0
    tasks_scheduled: int = 0
    emails_sent: int = 0
    skipped: list[SkippedEmployee] = []


class InitiatedAppraisalLaunchOut(InitiatedAppraisalOut):
    launch: LaunchSummary | None = None


class ScheduledTaskOut(BaseModel):
    id: str
    initiated_appraisal_id: str
    frequency_calendar_detail_id: str
    scheduled_date: date
    status: str
    executed_at: datetime | None
    error: str | None
    created_at: datetime


class AppraisalProgressOut(BaseModel):
    initiated_appraisal_id: str
    status: str
    total_evaluations: int = 0
    evaluations_by_status: dict[str, int] = {}
    completion_rate: float = 0.0  # percentage of evaluations completed or finalized
    pending_tasks: int = 0


class SendReminderPayload(BaseModel):
    employee_id: str


class RunTasksOut(BaseModel):
    run_date: date
    tasks_executed: int = 0
    tasks_failed: int = 0
    evaluations_created: int = 0
    reminders_sent: int = 0
    evaluations_closed: int = 0
    appraisals_closed: int = 0
