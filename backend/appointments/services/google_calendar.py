"""
backend/appointments/services/google_calendar.py

Google Calendar client for provider integrations.

Handles:
- Access token refresh
- Free/busy lookup
- Calendar event create/delete

Every request runs over an httplib2 transport with a socket timeout.
Automatic token refresh of the transport is disabled: a 401 surfaces as
CalendarAuthError so the caller decides whether to refresh (at most once).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp, Request
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import settings

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"

# Anything the transport or API can raise for a failed remote call
CALENDAR_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError, ValueError)


class CalendarAuthError(Exception):
    """The calendar API rejected the access token (HTTP 401)."""


@dataclass(frozen=True)
class RefreshedToken:
    access_token: str
    token_expires_at: str | None = None


@dataclass(frozen=True)
class CalendarEvent:
    summary: str
    description: str
    start: datetime
    end: datetime
    timezone: str


class GoogleCalendarClient:
    """Calendar v3 API calls for one provider integration at a time."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout: float | None = None,
    ):
        self.client_id = client_id if client_id is not None else settings.google_client_id
        self.client_secret = client_secret if client_secret is not None else settings.google_client_secret
        self.timeout = timeout if timeout is not None else settings.calendar_timeout_seconds

    def _http(self) -> httplib2.Http:
        return httplib2.Http(timeout=self.timeout)

    def _service(self, access_token: str):
        """Build Google Calendar API service client."""
        credentials = Credentials(token=access_token)
        http = AuthorizedHttp(credentials, http=self._http(), refresh_status_codes=())
        return build("calendar", "v3", http=http, cache_discovery=False)

    def _execute(self, request) -> dict:
        try:
            return request.execute()
        except HttpError as e:
            if e.resp.status == 401:
                raise CalendarAuthError(str(e)) from e
            raise

    def refresh_credentials(self, refresh_token: str) -> RefreshedToken:
        """
        Refresh an expired access token.

        Raises:
            GoogleAuthError: If refresh fails (token revoked or invalid)
        """
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )
        credentials.refresh(Request(self._http()))

        expires_at = None
        if credentials.expiry:
            expires_at = credentials.expiry.strftime("%Y-%m-%d %H:%M:%S")

        return RefreshedToken(access_token=credentials.token, token_expires_at=expires_at)

    def get_busy_intervals(self, integration, start: datetime, end: datetime) -> list:
        """Busy periods of the integration's calendar within [start, end)."""
        from .slots.intervals import Interval

        service = self._service(integration.access_token)
        body = {
            "timeMin": start.astimezone(timezone.utc).isoformat(),
            "timeMax": end.astimezone(timezone.utc).isoformat(),
            "items": [{"id": integration.calendar_id}],
        }
        response = self._execute(service.freebusy().query(body=body))

        calendar = response.get("calendars", {}).get(integration.calendar_id, {})
        intervals = []
        for busy in calendar.get("busy", []):
            if busy.get("start") and busy.get("end"):
                busy_start = _parse_rfc3339(busy["start"])
                busy_end = _parse_rfc3339(busy["end"])
                if busy_end > busy_start:
                    intervals.append(Interval(busy_start, busy_end))
        return intervals

    def create_event(self, integration, event: CalendarEvent) -> str | None:
        """Create a calendar event. Returns the remote event ID."""
        service = self._service(integration.access_token)
        body = {
            "summary": event.summary,
            "description": event.description,
            "start": {
                "dateTime": event.start.isoformat(),
                "timeZone": event.timezone,
            },
            "end": {
                "dateTime": event.end.isoformat(),
                "timeZone": event.timezone,
            },
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "popup", "minutes": 30},
                ],
            },
        }
        created = self._execute(
            service.events().insert(calendarId=integration.calendar_id, body=body)
        )
        logger.info(f"Created Google Calendar event: {created.get('id')}")
        return created.get("id")

    def delete_event(self, integration, event_id: str) -> bool:
        """Delete a calendar event. An already-deleted event counts as deleted."""
        service = self._service(integration.access_token)
        try:
            self._execute(
                service.events().delete(calendarId=integration.calendar_id, eventId=event_id)
            )
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.warning(f"Calendar event not found: {event_id}")
                return True
            raise
        logger.info(f"Deleted Google Calendar event: {event_id}")
        return True


@lru_cache
def get_calendar_client() -> GoogleCalendarClient:
    return GoogleCalendarClient()


def _parse_rfc3339(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
