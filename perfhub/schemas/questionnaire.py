from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

Status = Literal["active", "inactive"]
QuestionType = Literal["text", "textarea", "rating", "number", "select", "multiselect", "date"]


class Question(BaseModel):
    id: str = Field(min_length=1, max_length=100)
    text: str = Field(min_length=1, max_length=2000)
    type: QuestionType = "text"
    required: bool = False
    options: list[str] | None = None
    min: float | None = None
    max: float | None = None
    max_length: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_rules(self):
        if self.type in ("select", "multiselect") and not self.options:
            raise ValueError(f"question {self.id}: options are required for {self.type}")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"question {self.id}: min must be <= max")
        return self


def _unique_ids(questions: list[Question] | None) -> list[Question] | None:
    if questions is None:
        return questions
    seen: set[str] = set()
    for q in questions:
        if q.id in seen:
            raise ValueError(f"duplicate question id: {q.id}")
        seen.add(q.id)
    return questions


class QuestionnaireTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    target_role: Literal["employee", "manager"] = "employee"
    applicable_category: Literal["employee", "manager"] | None = None
    applicable_level_id: str | None = None
    applicable_grade_id: str | None = None
    applicable_location_id: str | None = None
    send_on_mail: bool = False
    questions: list[Question] = Field(default_factory=list)
    year: int | None = Field(default=None, ge=2000, le=2100)
    status: Status = "active"
    # super_admin only: publish a template every company can use
    is_global: bool = False

    @field_validator("questions")
    @classmethod
    def check_question_ids(cls, v):
        return _unique_ids(v)


class QuestionnaireTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    target_role: Literal["employee", "manager"] | None = None
    applicable_category: Literal["employee", "manager"] | None = None
    applicable_level_id: str | None = None
    applicable_grade_id: str | None = None
    applicable_location_id: str | None = None
    send_on_mail: bool | None = None
    questions: list[Question] | None = None
    year: int | None = Field(default=None, ge=2000, le=2100)
    status: Status | None = None

    @field_validator("questions")
    @classmethod
    def check_question_ids(cls, v):
        return _unique_ids(v)


class QuestionnaireTemplateOut(BaseModel):
    id: str
    company_id: str | None
    name: str
    description: str | None
    target_role: str
    applicable_category: str | None
    applicable_level_id: str | None
    applicable_grade_id: str | None
    applicable_location_id: str | None
    send_on_mail: bool
    questions: list[dict]
    year: int | None
    status: str
    created_at: datetime
    updated_at: datetime


class PublishQuestionnaireCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    display_name: str = Field(min_length=1, max_length=255)
    template_id: str
    frequency_calendar_id: str | None = None
    status: Status = "active"
    publish_type: Literal["now", "as_per_calendar"] = "now"

    @model_validator(mode="after")
    def calendar_required(self):
        if self.publish_type == "as_per_calendar" and not self.frequency_calendar_id:
            raise ValueError("frequency_calendar_id is required when publish_type is as_per_calendar")
        return self


class PublishQuestionnaireUpdate(BaseModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=255)
    frequency_calendar_id: str | None = None
    status: Status | None = None
    publish_type: Literal["now", "as_per_calendar"] | None = None


class PublishQuestionnaireOut(BaseModel):
    id: str
    company_id: str
    code: str
    display_name: str
    template_id: str
    frequency_calendar_id: str | None
    status: str
    publish_type: str
    created_at: datetime
    updated_at: datetime
