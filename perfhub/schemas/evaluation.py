from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class EvaluationOut(BaseModel):
    id: str
    company_id: str
    employee_id: str
    employee_name: str | None = None
    manager_id: str
    manager_name: str | None = None
    initiated_appraisal_id: str
    appraisal_type: str | None = None
    frequency_calendar_detail_id: str | None
    questionnaire_template_id: str | None
    status: str
    initiated_on: date
    due_date: date
    reminders_sent: int
    self_evaluation_data: dict[str, Any] | None
    self_evaluation_submitted_at: datetime | None
    manager_evaluation_data: dict[str, Any] | None
    manager_evaluation_submitted_at: datetime | None
    overall_rating: float | None
    meeting_scheduled_at: datetime | None
    meeting_location: str | None
    meeting_notes: str | None
    show_notes_to_employee: bool
    meeting_completed_at: datetime | None
    calendar_provider: str | None
    finalized_at: datetime | None
    created_at: datetime
    updated_at: datetime
    version: int


class EvaluationWithQuestionsOut(EvaluationOut):
    questions: list[dict] = []


class SaveAnswersPayload(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)


class ManagerSubmitPayload(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)
    overall_rating: float = Field(ge=1, le=5)


class MeetingSchedulePayload(BaseModel):
    scheduled_at: datetime
    duration_minutes: int | None = Field(default=None, ge=15, le=480)
    location: str | None = Field(default=None, max_length=500)
    notes: str | None = None


class MeetingCompletePayload(BaseModel):
    notes: str | None = None
    show_notes_to_employee: bool = False


class MeetingScheduledOut(BaseModel):
    evaluation: EvaluationOut
    provider: str  # google | outlook | ics
    event_id: str | None = None
    email_sent: bool = False
