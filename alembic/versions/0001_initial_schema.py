"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

MASTER_TABLES = ("levels", "grades", "departments", "review_frequencies")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _tenant() -> list[sa.Column]:
    return [
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    ]


def _coded() -> list[sa.Column]:
    return [
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=1000), nullable=True),
        sa.Column("client_contact", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("contact_number", sa.String(length=50), nullable=True),
        sa.Column("gst_number", sa.String(length=50), nullable=True),
        sa.Column("logo_url", sa.String(length=1000), nullable=True),
        sa.Column("url", sa.String(length=500), nullable=True),
        sa.Column("company_url", sa.String(length=255), nullable=True, unique=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_companies_status"),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False, unique=True),
    )

    # department/location/level/grade FKs are added once those tables exist
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=False),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("code", sa.String(length=50), nullable=True),
        sa.Column("designation", sa.String(length=255), nullable=True),
        sa.Column("date_of_joining", sa.Date(), nullable=True),
        sa.Column("mobile_number", sa.String(length=50), nullable=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
        sa.Column("reporting_manager_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("department_id", sa.Uuid(), nullable=True),
        sa.Column("location_id", sa.Uuid(), nullable=True),
        sa.Column("level_id", sa.Uuid(), nullable=True),
        sa.Column("grade_id", sa.Uuid(), nullable=True),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_by_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_users_status"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_company_id", "users", ["company_id"])

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role_id", sa.Uuid(), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    # --- master data ---
    op.create_table(
        "locations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        *_tenant(),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("state", sa.String(length=255), nullable=True),
        sa.Column("country", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "code", name="uq_locations_company_code"),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_locations_status"),
    )
    op.create_index("ix_locations_company_id", "locations", ["company_id"])

    for table in MASTER_TABLES:
        op.create_table(
            table,
            sa.Column("id", sa.Uuid(), primary_key=True),
            *_tenant(),
            *_coded(),
            *_timestamps(),
            sa.UniqueConstraint("company_id", "code", name=f"uq_{table}_company_code"),
            sa.CheckConstraint("status IN ('active','inactive')", name=f"ck_{table}_status"),
        )
        op.create_index(f"ix_{table}_company_id", table, ["company_id"])

    for column, target in (
        ("department_id", "departments"),
        ("location_id", "locations"),
        ("level_id", "levels"),
        ("grade_id", "grades"),
    ):
        op.create_foreign_key(
            f"fk_users_{column}", "users", target, [column], ["id"], ondelete="SET NULL"
        )

    # --- calendars ---
    op.create_table(
        "appraisal_cycles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        *_tenant(),
        *_coded(),
        sa.Column("from_date", sa.Date(), nullable=False),
        sa.Column("to_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "code", name="uq_appraisal_cycles_company_code"),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_appraisal_cycles_status"),
        sa.CheckConstraint("to_date >= from_date", name="ck_appraisal_cycles_range"),
    )
    op.create_index("ix_appraisal_cycles_company_id", "appraisal_cycles", ["company_id"])

    op.create_table(
        "frequency_calendars",
        sa.Column("id", sa.Uuid(), primary_key=True),
        *_tenant(),
        *_coded(),
        sa.Column(
            "appraisal_cycle_id",
            sa.Uuid(),
            sa.ForeignKey("appraisal_cycles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "review_frequency_id",
            sa.Uuid(),
            sa.ForeignKey("review_frequencies.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "code", name="uq_frequency_calendars_company_code"),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_frequency_calendars_status"),
    )
    op.create_index("ix_frequency_calendars_company_id", "frequency_calendars", ["company_id"])

    op.create_table(
        "frequency_calendar_details",
        sa.Column("id", sa.Uuid(), primary_key=True),
        *_tenant(),
        sa.Column(
            "frequency_calendar_id",
            sa.Uuid(),
            sa.ForeignKey("frequency_calendars.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("display_name", sa.String(length=200), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_frequency_calendar_details_status"),
        sa.CheckConstraint("end_date >= start_date", name="ck_frequency_calendar_details_range"),
    )
    op.create_index("ix_frequency_calendar_details_company_id", "frequency_calendar_details", ["company_id"])
    op.create_index(
        "ix_frequency_calendar_details_frequency_calendar_id",
        "frequency_calendar_details",
        ["frequency_calendar_id"],
    )

    # --- questionnaires ---
    op.create_table(
        "questionnaire_templates",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
        sa.Column("created_by_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("target_role", sa.String(length=30), nullable=False),
        sa.Column("applicable_category", sa.String(length=20), nullable=True),
        sa.Column("applicable_level_id", sa.Uuid(), sa.ForeignKey("levels.id", ondelete="SET NULL"), nullable=True),
        sa.Column("applicable_grade_id", sa.Uuid(), sa.ForeignKey("grades.id", ondelete="SET NULL"), nullable=True),
        sa.Column(
            "applicable_location_id", sa.Uuid(), sa.ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("send_on_mail", sa.Boolean(), nullable=False),
        sa.Column("questions", JSONType, nullable=False),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_questionnaire_templates_status"),
        sa.CheckConstraint(
            "applicable_category IS NULL OR applicable_category IN ('employee','manager')",
            name="ck_questionnaire_templates_category",
        ),
    )
    op.create_index("ix_questionnaire_templates_company_id", "questionnaire_templates", ["company_id"])

    op.create_table(
        "publish_questionnaires",
        sa.Column("id", sa.Uuid(), primary_key=True),
        *_tenant(),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column(
            "template_id",
            sa.Uuid(),
            sa.ForeignKey("questionnaire_templates.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "frequency_calendar_id",
            sa.Uuid(),
            sa.ForeignKey("frequency_calendars.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("publish_type", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "code", name="uq_publish_questionnaires_company_code"),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_publish_questionnaires_status"),
        sa.CheckConstraint("publish_type IN ('now','as_per_calendar')", name="ck_publish_questionnaires_type"),
    )
    op.create_index("ix_publish_questionnaires_company_id", "publish_questionnaires", ["company_id"])

    # --- appraisal groups ---
    op.create_table(
        "appraisal_groups",
        sa.Column("id", sa.Uuid(), primary_key=True),
        *_tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_appraisal_groups_status"),
    )
    op.create_index("ix_appraisal_groups_company_id", "appraisal_groups", ["company_id"])

    op.create_table(
        "appraisal_group_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "appraisal_group_id",
            sa.Uuid(),
            sa.ForeignKey("appraisal_groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("added_by_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("appraisal_group_id", "user_id", name="uq_appraisal_group_member"),
    )

    # --- initiated appraisals ---
    op.create_table(
        "initiated_appraisals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        *_tenant(),
        sa.Column(
            "appraisal_group_id",
            sa.Uuid(),
            sa.ForeignKey("appraisal_groups.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("appraisal_type", sa.String(length=30), nullable=False),
        sa.Column("questionnaire_template_ids", JSONType, nullable=False),
        sa.Column("document_url", sa.String(length=1000), nullable=True),
        sa.Column(
            "frequency_calendar_id",
            sa.Uuid(),
            sa.ForeignKey("frequency_calendars.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("days_to_initiate", sa.Integer(), nullable=False),
        sa.Column("days_to_close", sa.Integer(), nullable=False),
        sa.Column("number_of_reminders", sa.Integer(), nullable=False),
        sa.Column("exclude_tenure_less_than_year", sa.Boolean(), nullable=False),
        sa.Column("excluded_employee_ids", JSONType, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("make_public", sa.Boolean(), nullable=False),
        sa.Column("publish_type", sa.String(length=20), nullable=False),
        sa.Column("launched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "appraisal_type IN ('questionnaire_based','kpi_based','mbo_based','okr_based')",
            name="ck_initiated_appraisals_type",
        ),
        sa.CheckConstraint(
            "status IN ('draft','active','closed','cancelled')",
            name="ck_initiated_appraisals_status",
        ),
        sa.CheckConstraint(
            "publish_type IN ('now','as_per_calendar')",
            name="ck_initiated_appraisals_publish_type",
        ),
        sa.CheckConstraint(
            "days_to_initiate >= 0 AND days_to_close >= 0 AND number_of_reminders >= 0",
            name="ck_initiated_appraisals_timing",
        ),
    )
    op.create_index("ix_initiated_appraisals_company_id", "initiated_appraisals", ["company_id"])

    op.create_table(
        "initiated_appraisal_detail_timings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "initiated_appraisal_id",
            sa.Uuid(),
            sa.ForeignKey("initiated_appraisals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "frequency_calendar_detail_id",
            sa.Uuid(),
            sa.ForeignKey("frequency_calendar_details.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("days_to_initiate", sa.Integer(), nullable=False),
        sa.Column("days_to_close", sa.Integer(), nullable=False),
        sa.Column("number_of_reminders", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("initiated_appraisal_id", "frequency_calendar_detail_id", name="uq_detail_timing"),
    )

    op.create_table(
        "scheduled_appraisal_tasks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "initiated_appraisal_id",
            sa.Uuid(),
            sa.ForeignKey("initiated_appraisals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "frequency_calendar_detail_id",
            sa.Uuid(),
            sa.ForeignKey("frequency_calendar_details.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "initiated_appraisal_id", "frequency_calendar_detail_id", name="uq_scheduled_task_period"
        ),
        sa.CheckConstraint(
            "status IN ('pending','completed','failed','cancelled')",
            name="ck_scheduled_tasks_status",
        ),
    )
    op.create_index(
        "ix_scheduled_appraisal_tasks_initiated_appraisal_id",
        "scheduled_appraisal_tasks",
        ["initiated_appraisal_id"],
    )
    op.create_index("ix_scheduled_appraisal_tasks_scheduled_date", "scheduled_appraisal_tasks", ["scheduled_date"])

    # --- evaluations ---
    op.create_table(
        "evaluations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("manager_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "initiated_appraisal_id",
            sa.Uuid(),
            sa.ForeignKey("initiated_appraisals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "frequency_calendar_detail_id",
            sa.Uuid(),
            sa.ForeignKey("frequency_calendar_details.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column(
            "questionnaire_template_id",
            sa.Uuid(),
            sa.ForeignKey("questionnaire_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("self_evaluation_data", JSONType, nullable=True),
        sa.Column("self_evaluation_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manager_evaluation_data", JSONType, nullable=True),
        sa.Column("manager_evaluation_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("overall_rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("initiated_on", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("reminders_sent", sa.Integer(), nullable=False),
        sa.Column("last_reminder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meeting_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meeting_location", sa.String(length=500), nullable=True),
        sa.Column("meeting_notes", sa.Text(), nullable=True),
        sa.Column("show_notes_to_employee", sa.Boolean(), nullable=False),
        sa.Column("meeting_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("calendar_provider", sa.String(length=20), nullable=True),
        sa.Column("calendar_event_id", sa.String(length=255), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "initiated_appraisal_id",
            "frequency_calendar_detail_id",
            "employee_id",
            name="uq_evaluation_period_employee",
        ),
        sa.CheckConstraint(
            "status IN ('not_started','in_progress','submitted','completed','finalized','closed')",
            name="ck_evaluations_status",
        ),
        sa.CheckConstraint(
            "overall_rating IS NULL OR (overall_rating >= 1 AND overall_rating <= 5)",
            name="ck_evaluations_rating",
        ),
        sa.CheckConstraint(
            "(status NOT IN ('not_started','in_progress')) OR (self_evaluation_submitted_at IS NULL)",
            name="ck_eval_ts_self",
        ),
        sa.CheckConstraint(
            "(status NOT IN ('completed','finalized')) OR (manager_evaluation_submitted_at IS NOT NULL)",
            name="ck_eval_ts_manager",
        ),
        sa.CheckConstraint(
            "(status <> 'finalized') OR (finalized_at IS NOT NULL)",
            name="ck_eval_ts_finalized",
        ),
    )
    op.create_index("ix_evaluations_company_id", "evaluations", ["company_id"])
    op.create_index("ix_evaluations_employee_id", "evaluations", ["employee_id"])
    op.create_index("ix_evaluations_manager_id", "evaluations", ["manager_id"])
    op.create_index("ix_evaluations_initiated_appraisal_id", "evaluations", ["initiated_appraisal_id"])
    op.create_index("ix_evaluations_due_date", "evaluations", ["due_date"])

    # --- notifications ---
    op.create_table(
        "email_configs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("smtp_host", sa.String(length=255), nullable=False),
        sa.Column("smtp_port", sa.Integer(), nullable=False),
        sa.Column("smtp_username", sa.String(length=255), nullable=False),
        sa.Column("smtp_password", sa.String(length=255), nullable=False),
        sa.Column("from_email", sa.String(length=320), nullable=False),
        sa.Column("from_name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "email_templates",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=500), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("template_type", sa.String(length=50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "template_type", name="uq_email_template_company_type"),
    )

    op.create_table(
        "calendar_credentials",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(length=20), nullable=False),
        sa.Column("client_id", sa.String(length=500), nullable=False),
        sa.Column("client_secret", sa.String(length=500), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scope", sa.String(length=1000), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "provider", name="uq_calendar_credential_company_provider"),
        sa.CheckConstraint("provider IN ('google','outlook')", name="ck_calendar_credentials_provider"),
    )

    op.create_table(
        "registrations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("designation", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("mobile", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notification_sent", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending','contacted','approved','rejected')",
            name="ck_registrations_status",
        ),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("event_metadata", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_events_company_id", "audit_events", ["company_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("registrations")
    op.drop_table("calendar_credentials")
    op.drop_table("email_templates")
    op.drop_table("email_configs")
    op.drop_table("evaluations")
    op.drop_table("scheduled_appraisal_tasks")
    op.drop_table("initiated_appraisal_detail_timings")
    op.drop_table("initiated_appraisals")
    op.drop_table("appraisal_group_members")
    op.drop_table("appraisal_groups")
    op.drop_table("publish_questionnaires")
    op.drop_table("questionnaire_templates")
    op.drop_table("frequency_calendar_details")
    op.drop_table("frequency_calendars")
    op.drop_table("appraisal_cycles")
    for column in ("department_id", "location_id", "level_id", "grade_id"):
        op.drop_constraint(f"fk_users_{column}", "users", type_="foreignkey")
    for table in reversed(MASTER_TABLES):
        op.drop_table(table)
    op.drop_table("locations")
    op.drop_table("user_roles")
    op.drop_table("users")
    op.drop_table("roles")
    op.drop_table("companies")
