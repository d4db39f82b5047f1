import os
import json
from typing import Optional, Dict, Any
import logging
from google.oauth2.credentials import Credentials
from google.oauth2 import service_account
from googleapiclient.discovery import build

from samevents.integrations.base import CalendarEventData

logger = logging.getLogger(__name__)

TOKEN_URI = 'https://oauth2.googleapis.com/token'
SCOPES = ['https://www.googleapis.com/auth/calendar']


def _event_body(event_data: CalendarEventData) -> Dict[str, Any]:
    """Format an event for the Google Calendar API"""
    return {
        'summary': event_data.title,
        'description': event_data.description or '',
        'location': event_data.location or '',
        'start': {
            'dateTime': event_data.start_time.isoformat(),
            'timeZone': event_data.timezone,
        },
        'end': {
            'dateTime': event_data.end_time.isoformat(),
            'timeZone': event_data.timezone,
        },
    }


class GoogleCalendarService:
    """Thin wrapper over the Calendar v3 API.

    Errors from the API propagate; callers decide whether a failure matters.
    """

    def __init__(self, credentials, calendar_id: str = 'primary'):
        self.calendar_id = calendar_id or 'primary'
        self.service = build('calendar', 'v3', credentials=credentials, cache_discovery=False)
        logger.debug(f"Initialized Google Calendar service for calendar {self.calendar_id}")

    @classmethod
    def from_tokens(cls, access_token: str, refresh_token: Optional[str] = None,
                    client_id: Optional[str] = None, client_secret: Optional[str] = None,
                    calendar_id: str = 'primary') -> 'GoogleCalendarService':
        """Build a service from a user's OAuth tokens"""
        credentials = Credentials(
            token=access_token,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=client_id,
            client_secret=client_secret,
            scopes=SCOPES,
        )
        return cls(credentials, calendar_id)

    @classmethod
    def from_service_account(cls, service_account_file: str, calendar_id: str = 'primary') -> 'GoogleCalendarService':
        """Build a service from the server's own service account key"""
        if not service_account_file or not os.path.exists(service_account_file):
            raise ValueError(f"Service account JSON file not found at {service_account_file}")

        with open(service_account_file, 'r') as f:
            service_account_info = json.load(f)

        credentials = service_account.Credentials.from_service_account_info(
            service_account_info,
            scopes=SCOPES
        )
        logger.info("Loaded Google service account credentials")
        return cls(credentials, calendar_id)

    def create_event(self, event_data: CalendarEventData) -> str:
        """Create a new event in the calendar and return its id"""
        created = self.service.events().insert(
            calendarId=self.calendar_id,
            body=_event_body(event_data)
        ).execute()
        logger.info(f"Created Google Calendar event {created['id']} in calendar {self.calendar_id}")
        return created['id']

    def update_event(self, event_id: str, event_data: CalendarEventData) -> Dict[str, Any]:
        """Update an existing event"""
        return self.service.events().update(
            calendarId=self.calendar_id,
            eventId=event_id,
            body=_event_body(event_data)
        ).execute()

    def delete_event(self, event_id: str):
        """Delete an event from the calendar"""
        self.service.events().delete(
            calendarId=self.calendar_id,
            eventId=event_id
        ).execute()
