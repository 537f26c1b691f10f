from pydantic import BaseModel


class SuperAdminMetrics(BaseModel):
    """Platform-wide counts"""
    total_companies: int = 0
    active_companies: int = 0
    total_users: int = 0
    active_users: int = 0
    pending_registrations: int = 0
    active_appraisals: int = 0


class CompanySummary(BaseModel):
    company_id: str
    name: str
    status: str
    user_count: int = 0
    active_appraisals: int = 0


class CompanyDashboard(BaseModel):
    """Counts for the caller's company"""
    company_id: str
    total_employees: int = 0
    active_employees: int = 0
    appraisal_groups: int = 0
    appraisals_by_status: dict[str, int] = {}
    evaluations_by_status: dict[str, int] = {}
    overdue_evaluations: int = 0
    completion_rate: float = 0.0
    pending_tasks: int = 0
