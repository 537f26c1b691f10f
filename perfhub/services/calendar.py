"""
Calendar integration for review meetings.

Provider detection order per company: Google, then Outlook, then a plain
ICS attachment. OAuth access tokens are reused until shortly before they
expire, otherwise verified or refreshed, and refreshed tokens are written
back to the CalendarCredential row.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import requests
from sqlalchemy.orm import Session

from perfhub.core.clock import ensure_aware, utcnow
from perfhub.core.config import settings
from perfhub.models.notification import CalendarCredential

logger = logging.getLogger(__name__)

GOOGLE_TOKENINFO_URL = "https://www.googleapis.com/oauth2/v1/tokeninfo"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"

OUTLOOK_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
OUTLOOK_SCOPE = "https://graph.microsoft.com/Calendars.ReadWrite offline_access"
GRAPH_CALENDAR_URL = "https://graph.microsoft.com/v1.0/me/calendar"
GRAPH_EVENTS_URL = "https://graph.microsoft.com/v1.0/me/calendar/events"

EXPIRY_SKEW = timedelta(seconds=60)


@dataclass
class Attendee:
    email: str
    name: str


@dataclass
class CalendarEvent:
    subject: str
    description: str
    start: datetime
    end: datetime
    location: str | None = None
    attendees: list[Attendee] = field(default_factory=list)
    organizer: Attendee | None = None


@dataclass
class CalendarResult:
    provider: str  # google | outlook | ics
    event_id: str | None = None
    error: str | None = None


def meeting_event(
    *,
    employee_name: str,
    employee_email: str,
    manager_name: str,
    manager_email: str,
    start: datetime,
    duration_minutes: int,
    location: str | None = None,
    notes: str | None = None,
) -> CalendarEvent:
    description = f"One-on-one performance review meeting between {employee_name} and {manager_name}"
    if notes:
        description += f"\n\nNotes: {notes}"

    start = ensure_aware(start)
    return CalendarEvent(
        subject=f"Performance Review Meeting - {employee_name} ({duration_minutes}min)",
        description=description,
        start=start,
        end=start + timedelta(minutes=duration_minutes),
        location=location,
        attendees=[
            Attendee(email=employee_email, name=employee_name),
            Attendee(email=manager_email, name=manager_name),
        ],
        organizer=Attendee(email=manager_email, name=manager_name),
    )


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def _timeout() -> float:
    return settings.CALENDAR_HTTP_TIMEOUT


def token_is_fresh(cred: CalendarCredential, now: datetime | None = None) -> bool:
    if not cred.access_token or cred.expires_at is None:
        return False
    now = now or utcnow()
    return ensure_aware(cred.expires_at) - EXPIRY_SKEW > now


def _verify_token(cred: CalendarCredential) -> bool:
    try:
        if cred.provider == "google":
            r = requests.get(
                GOOGLE_TOKENINFO_URL,
                params={"access_token": cred.access_token},
                timeout=_timeout(),
            )
        else:
            r = requests.get(
                GRAPH_CALENDAR_URL,
                headers={"Authorization": f"Bearer {cred.access_token}"},
                timeout=_timeout(),
            )
    except requests.RequestException:
        logger.warning("Calendar token verification failed", exc_info=True, extra={"provider": cred.provider})
        return False
    return r.ok


def refresh_access_token(db: Session, cred: CalendarCredential) -> bool:
    """
    Exchange the refresh token for a new access token and persist it.
    Outlook rotates refresh tokens, so a returned refresh_token replaces the stored one.
    """
    data = {
        "client_id": cred.client_id,
        "client_secret": cred.client_secret,
        "refresh_token": cred.refresh_token,
        "grant_type": "refresh_token",
    }
    if cred.provider == "google":
        url = GOOGLE_TOKEN_URL
    else:
        url = OUTLOOK_TOKEN_URL
        data["scope"] = OUTLOOK_SCOPE

    try:
        r = requests.post(url, data=data, timeout=_timeout())
    except requests.RequestException:
        logger.warning("Calendar token refresh failed", exc_info=True, extra={"provider": cred.provider})
        return False

    if not r.ok:
        logger.warning(
            "Calendar token refresh rejected",
            extra={"provider": cred.provider, "status_code": r.status_code},
        )
        return False

    try:
        payload = r.json()
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")
        expires_at = utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None
    except (ValueError, TypeError, AttributeError):
        logger.warning("Calendar token response is malformed", exc_info=True, extra={"provider": cred.provider})
        return False
    if not access_token:
        return False

    cred.access_token = access_token
    cred.expires_at = expires_at
    if cred.provider == "outlook" and payload.get("refresh_token"):
        cred.refresh_token = payload["refresh_token"]
    db.flush()

    logger.info("Calendar token refreshed", extra={"provider": cred.provider, "company_id": str(cred.company_id)})
    return True


def ensure_access_token(db: Session, cred: CalendarCredential, now: datetime | None = None) -> bool:
    """True when `cred.access_token` can be used for an API call."""
    if token_is_fresh(cred, now):
        return True
    if cred.access_token and cred.expires_at is None and _verify_token(cred):
        return True
    if cred.refresh_token and cred.client_id and cred.client_secret:
        return refresh_access_token(db, cred)
    return False


def detect_provider(db: Session, company_id: uuid.UUID) -> tuple[str, CalendarCredential | None]:
    creds = {
        c.provider: c
        for c in db.query(CalendarCredential)
        .filter(CalendarCredential.company_id == company_id, CalendarCredential.is_active.is_(True))
        .all()
    }
    for provider in ("google", "outlook"):
        cred = creds.get(provider)
        if cred and ensure_access_token(db, cred):
            return provider, cred
    return "ics", None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

def _create_google_event(cred: CalendarCredential, event: CalendarEvent) -> str | None:
    body = {
        "summary": event.subject,
        "description": event.description,
        "start": {"dateTime": event.start.isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": event.end.isoformat(), "timeZone": "UTC"},
        "location": event.location,
        "attendees": [{"email": a.email, "displayName": a.name} for a in event.attendees],
    }
    r = requests.post(
        GOOGLE_EVENTS_URL,
        params={"sendUpdates": "all"},
        json=body,
        headers={"Authorization": f"Bearer {cred.access_token}"},
        timeout=_timeout(),
    )
    r.raise_for_status()
    return r.json().get("id")


def _create_outlook_event(cred: CalendarCredential, event: CalendarEvent) -> str | None:
    body = {
        "subject": event.subject,
        "body": {"contentType": "HTML", "content": event.description},
        "start": {"dateTime": event.start.isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": event.end.isoformat(), "timeZone": "UTC"},
        "location": {"displayName": event.location or ""},
        "attendees": [
            {"emailAddress": {"address": a.email, "name": a.name}, "type": "required"}
            for a in event.attendees
        ],
    }
    r = requests.post(
        GRAPH_EVENTS_URL,
        json=body,
        headers={"Authorization": f"Bearer {cred.access_token}"},
        timeout=_timeout(),
    )
    r.raise_for_status()
    return r.json().get("id")


def create_event(db: Session, company_id: uuid.UUID, event: CalendarEvent) -> CalendarResult:
    """
    Create the event with the company's calendar provider.
    Any provider failure degrades to the ICS fallback; the caller then
    attaches build_ics(event) to the invitation email.
    """
    provider, cred = detect_provider(db, company_id)
    if cred is None:
        return CalendarResult(provider="ics")

    try:
        if provider == "google":
            event_id = _create_google_event(cred, event)
        else:
            event_id = _create_outlook_event(cred, event)
    except (requests.RequestException, ValueError) as exc:
        logger.warning(
            "Calendar event creation failed; falling back to ICS",
            exc_info=True,
            extra={"provider": provider, "company_id": str(company_id)},
        )
        return CalendarResult(provider="ics", error=f"{provider}: {exc}")

    logger.info("Calendar event created", extra={"provider": provider, "event_id": event_id})
    return CalendarResult(provider=provider, event_id=event_id)


def _ics_escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def _ics_param(value: str) -> str:
    # parameter values are quoted, and DQUOTE is not allowed inside
    return '"' + value.replace('"', "").replace("\n", " ") + '"'


def _ics_time(value: datetime) -> str:
    return ensure_aware(value).astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def build_ics(event: CalendarEvent, uid: str | None = None) -> str:
    """RFC 5545 invitation with CRLF line endings."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Performance Hub//Review Meetings//EN",
        "METHOD:REQUEST",
        "BEGIN:VEVENT",
        f"UID:{uid or uuid.uuid4()}@perfhub",
        f"DTSTAMP:{_ics_time(utcnow())}",
        f"DTSTART:{_ics_time(event.start)}",
        f"DTEND:{_ics_time(event.end)}",
        f"SUMMARY:{_ics_escape(event.subject)}",
        f"DESCRIPTION:{_ics_escape(event.description)}",
    ]
    if event.location:
        lines.append(f"LOCATION:{_ics_escape(event.location)}")
    if event.organizer:
        lines.append(f"ORGANIZER;CN={_ics_param(event.organizer.name)}:mailto:{event.organizer.email}")
    for a in event.attendees:
        lines.append(f"ATTENDEE;CN={_ics_param(a.name)};RSVP=TRUE:mailto:{a.email}")
    lines += ["END:VEVENT", "END:VCALENDAR"]
    return "\r\n".join(lines) + "\r\n"
