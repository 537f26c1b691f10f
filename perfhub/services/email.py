import logging
import re
import smtplib
import uuid
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr

from sqlalchemy.orm import Session

from perfhub.core.config import settings
from perfhub.models.notification import EmailConfig, EmailTemplate

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

DEFAULT_TEMPLATES: dict[str, tuple[str, str]] = {
    "appraisal_initiated": (
        "Your performance appraisal has started",
        "<p>Hello {{employee_name}},</p>"
        "<p>A {{appraisal_type}} appraisal has been initiated for you at {{company_name}}. "
        "Your reviewer is {{manager_name}}.</p>"
        "<p>Please complete your self evaluation by <strong>{{due_date}}</strong>.</p>"
        '<p><a href="{{app_url}}">Open Performance Hub</a></p>',
    ),
    "appraisal_reminder": (
        "Reminder: appraisal due on {{due_date}}",
        "<p>Hello {{recipient_name}},</p>"
        "<p>This is a reminder that the appraisal for {{employee_name}} is still "
        "<strong>{{status}}</strong> and is due on {{due_date}}.</p>"
        '<p><a href="{{app_url}}">Open Performance Hub</a></p>',
    ),
    "meeting_scheduled": (
        "Performance review meeting on {{meeting_date}}",
        "<p>Hello,</p>"
        "<p>A performance review meeting between {{employee_name}} and {{manager_name}} "
        "is scheduled for <strong>{{meeting_date}}</strong> ({{duration}} minutes).</p>"
        "<p>Location: {{location}}</p>"
        "<p>{{notes}}</p>",
    ),
    "test": (
        "Performance Hub test email (SMTP config check)",
        "<p>This is a test email from Performance Hub to confirm SMTP settings.</p>",
    ),
}


@dataclass
class SmtpSettings:
    host: str
    port: int
    username: str | None
    password: str | None
    from_email: str
    from_name: str


@dataclass
class Attachment:
    filename: str
    content: str
    maintype: str = "text"
    subtype: str = "calendar"


@dataclass
class EmailResult:
    sent: bool
    skipped: bool = False
    error: str | None = None
    recipients: list[str] = field(default_factory=list)


def resolve_smtp_settings(db: Session) -> SmtpSettings | None:
    """
    Active EmailConfig row (most recently updated wins), else SMTP_* settings.
    None when neither is configured.
    """
    cfg = (
        db.query(EmailConfig)
        .filter(EmailConfig.is_active.is_(True))
        .order_by(EmailConfig.updated_at.desc())
        .first()
    )
    if cfg:
        return SmtpSettings(
            host=cfg.smtp_host,
            port=cfg.smtp_port,
            username=cfg.smtp_username,
            password=cfg.smtp_password,
            from_email=cfg.from_email,
            from_name=cfg.from_name,
        )

    if settings.smtp_configured:
        return SmtpSettings(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            from_email=settings.SMTP_FROM_EMAIL,
            from_name=settings.SMTP_FROM_NAME,
        )
    return None


def render(text: str, context: dict) -> str:
    """Substitute {{name}} placeholders; unknown names render as empty strings."""
    return _PLACEHOLDER.sub(lambda m: str(context.get(m.group(1), "") or ""), text)


def get_template(db: Session, company_id: uuid.UUID | None, template_type: str) -> tuple[str, str]:
    """
    Company template, then global template, then the built-in default.
    Returns (subject, body).
    """
    if company_id is not None:
        row = (
            db.query(EmailTemplate)
            .filter(EmailTemplate.company_id == company_id, EmailTemplate.template_type == template_type)
            .one_or_none()
        )
        if row:
            return row.subject, row.body

    row = (
        db.query(EmailTemplate)
        .filter(EmailTemplate.company_id.is_(None), EmailTemplate.template_type == template_type)
        .first()
    )
    if row:
        return row.subject, row.body

    return DEFAULT_TEMPLATES[template_type]


def _build_message(
    smtp: SmtpSettings,
    to: list[str],
    subject: str,
    html: str,
    attachments: list[Attachment] | None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = formataddr((smtp.from_name, smtp.from_email))
    msg["To"] = ", ".join(to)

    msg.set_content(re.sub(r"<[^>]+>", "", html))
    msg.add_alternative(html, subtype="html")

    for a in attachments or []:
        msg.add_attachment(
            a.content.encode("utf-8"),
            maintype=a.maintype,
            subtype=a.subtype,
            filename=a.filename,
        )
    return msg


def _deliver(smtp: SmtpSettings, msg: EmailMessage) -> None:
    # 465 = implicit TLS, anything else upgrades with STARTTLS when offered
    if smtp.port == 465:
        server = smtplib.SMTP_SSL(smtp.host, smtp.port, timeout=SMTP_TIMEOUT_SECONDS)
    else:
        server = smtplib.SMTP(smtp.host, smtp.port, timeout=SMTP_TIMEOUT_SECONDS)

    with server:
        if smtp.port != 465:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
        if smtp.username:
            server.login(smtp.username, smtp.password or "")
        server.send_message(msg)


def send_email(
    db: Session,
    *,
    to: str | list[str],
    subject: str,
    html: str,
    attachments: list[Attachment] | None = None,
) -> EmailResult:
    """
    Send one message. Never raises for transport problems: the outcome is
    reported in the returned EmailResult.
    """
    recipients = [to] if isinstance(to, str) else [r for r in to if r]
    if not recipients:
        return EmailResult(sent=False, skipped=True, error="No recipients")

    smtp = resolve_smtp_settings(db)
    if smtp is None:
        logger.warning(
            "SMTP is not configured; email skipped",
            extra={"subject": subject, "recipients": recipients},
        )
        return EmailResult(sent=False, skipped=True, recipients=recipients)

    msg = _build_message(smtp, recipients, subject, html, attachments)
    try:
        _deliver(smtp, msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning(
            "Email delivery failed",
            exc_info=True,
            extra={"subject": subject, "recipients": recipients, "smtp_host": smtp.host},
        )
        return EmailResult(sent=False, error=str(exc), recipients=recipients)

    logger.info("Email sent", extra={"subject": subject, "recipients": recipients})
    return EmailResult(sent=True, recipients=recipients)


def send_templated_email(
    db: Session,
    *,
    company_id: uuid.UUID | None,
    template_type: str,
    to: str | list[str],
    context: dict,
    attachments: list[Attachment] | None = None,
) -> EmailResult:
    subject, body = get_template(db, company_id, template_type)
    ctx = {"app_url": settings.APP_BASE_URL, **context}
    return send_email(
        db,
        to=to,
        subject=render(subject, ctx),
        html=render(body, ctx),
        attachments=attachments,
    )
