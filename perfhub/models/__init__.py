from perfhub.models.appraisal_group import AppraisalGroup, AppraisalGroupMember
from perfhub.models.audit_event import AuditEvent
from perfhub.models.calendar import (
    AppraisalCycle,
    FrequencyCalendar,
    FrequencyCalendarDetails,
    ReviewFrequency,
)
from perfhub.models.company import Company
from perfhub.models.evaluation import Evaluation
from perfhub.models.initiated_appraisal import (
    InitiatedAppraisal,
    InitiatedAppraisalDetailTiming,
    ScheduledAppraisalTask,
)
from perfhub.models.notification import CalendarCredential, EmailConfig, EmailTemplate
from perfhub.models.org_structure import Department, Grade, Level, Location
from perfhub.models.questionnaire import PublishQuestionnaire, QuestionnaireTemplate
from perfhub.models.rbac import Role, UserRole
from perfhub.models.registration import Registration
from perfhub.models.user import User

__all__ = [ "AppraisalGroup", "AppraisalGroupMember", "AuditEvent",
           "AppraisalCycle", "FrequencyCalendar", "FrequencyCalendarDetails",
           "ReviewFrequency", "Company", "Evaluation", "InitiatedAppraisal",
           "InitiatedAppraisalDetailTiming", "ScheduledAppraisalTask",
           "CalendarCredential", "EmailConfig", "EmailTemplate", "Department",
           "Grade", "Level", "Location", "PublishQuestionnaire",
           "QuestionnaireTemplate", "Role", "UserRole", "Registration", "User" ]
