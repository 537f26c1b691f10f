import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from perfhub.core.config import settings
from perfhub.core.exceptions import PerfHubError
from perfhub.core.logging import setup_logging

from perfhub.api.health import router as health_router
from perfhub.api.me import router as me_router
from perfhub.api.root import router as root_router
from perfhub.api.audit import router as audit_router
from perfhub.api.companies import router as companies_router
from perfhub.api.users import router as users_router
from perfhub.api.locations import router as locations_router
from perfhub.api.master_data import (
    departments_router,
    grades_router,
    levels_router,
    review_frequencies_router,
)
from perfhub.api.appraisal_cycles import router as appraisal_cycles_router
from perfhub.api.frequency_calendars import router as frequency_calendars_router
from perfhub.api.frequency_calendar_details import router as frequency_calendar_details_router
from perfhub.api.questionnaire_templates import router as questionnaire_templates_router
from perfhub.api.publish_questionnaires import router as publish_questionnaires_router
from perfhub.api.appraisal_groups import router as appraisal_groups_router
from perfhub.api.initiated_appraisals import router as initiated_appraisals_router
from perfhub.api.scheduled_tasks import router as scheduled_tasks_router
from perfhub.api.evaluations import router as evaluations_router
from perfhub.api.email_config import router as email_config_router
from perfhub.api.email_templates import router as email_templates_router
from perfhub.api.calendar_credentials import router as calendar_credentials_router
from perfhub.api.dashboard import router as dashboard_router
from perfhub.api.registrations import router as registrations_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Performance Hub API starting", extra={"env": settings.APP_ENV})
    yield


app = FastAPI(title="Performance Hub", lifespan=lifespan)

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)


@app.exception_handler(PerfHubError)
async def perfhub_error_handler(request: Request, exc: PerfHubError):
    logger.warning(exc.message, extra={"code": exc.error_code, "path": request.url.path})
    content = {"detail": exc.message, "code": exc.error_code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled server error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(root_router)
app.include_router(health_router)
app.include_router(me_router)
app.include_router(audit_router)
app.include_router(companies_router)
app.include_router(users_router)
app.include_router(locations_router)
app.include_router(levels_router)
app.include_router(grades_router)
app.include_router(departments_router)
app.include_router(review_frequencies_router)
app.include_router(appraisal_cycles_router)
app.include_router(frequency_calendars_router)
app.include_router(frequency_calendar_details_router)
app.include_router(questionnaire_templates_router)
app.include_router(publish_questionnaires_router)
app.include_router(appraisal_groups_router)
app.include_router(initiated_appraisals_router)
app.include_router(scheduled_tasks_router)
app.include_router(evaluations_router)
app.include_router(email_config_router)
app.include_router(email_templates_router)
app.include_router(calendar_credentials_router)
app.include_router(dashboard_router)
app.include_router(registrations_router)
