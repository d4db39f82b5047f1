import logging
from datetime import timezone
from typing import Any, Dict

import requests
from msal import ConfidentialClientApplication

from samevents.integrations.base import CalendarEventData

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = 'https://graph.microsoft.com/v1.0'


class OutlookCalendarClient:
    """Application-level MSAL client, used to refresh user tokens"""

    def __init__(self, client_id: str, client_secret: str,
                 authority: str = "https://login.microsoftonline.com/common"):
        self.scopes = ["Calendars.ReadWrite"]
        self.app = ConfidentialClientApplication(
            client_id,
            authority=authority,
            client_credential=client_secret
        )

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Exchange a refresh token for a fresh access token.

        Returns the MSAL result dict (``access_token``, ``refresh_token``,
        ``expires_in``). Raises RuntimeError when Microsoft rejects the grant.
        """
        result = self.app.acquire_token_by_refresh_token(refresh_token, scopes=self.scopes)
        if 'access_token' not in result:
            raise RuntimeError(result.get('error_description') or result.get('error') or 'token refresh failed')
        return result


class MicrosoftCalendarService:
    """Microsoft Graph calendar calls made with a user's bearer token"""

    def __init__(self, access_token: str, timeout: float = 10):
        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json',
        })
        self.timeout = timeout

    def _event_body(self, event_data: CalendarEventData) -> Dict[str, Any]:
        start = event_data.start_time.astimezone(timezone.utc).replace(tzinfo=None)
        end = event_data.end_time.astimezone(timezone.utc).replace(tzinfo=None)
        return {
            'subject': event_data.title,
            'body': {
                'contentType': 'text',
                'content': event_data.description or '',
            },
            'start': {'dateTime': start.isoformat(), 'timeZone': 'UTC'},
            'end': {'dateTime': end.isoformat(), 'timeZone': 'UTC'},
            'location': {'displayName': event_data.location or ''},
        }

    def create_event(self, event_data: CalendarEventData) -> str:
        response = self.session.post(f'{GRAPH_BASE_URL}/me/events', json=self._event_body(event_data), timeout=self.timeout)
        response.raise_for_status()
        event_id = response.json()['id']
        logger.info(f"Created Microsoft calendar event {event_id}")
        return event_id

    def update_event(self, event_id: str, event_data: CalendarEventData):
        response = self.session.patch(f'{GRAPH_BASE_URL}/me/events/{event_id}', json=self._event_body(event_data), timeout=self.timeout)
        response.raise_for_status()

    def delete_event(self, event_id: str):
        response = self.session.delete(f'{GRAPH_BASE_URL}/me/events/{event_id}', timeout=self.timeout)
        # Already gone is as good as deleted
        if response.status_code != 404:
            response.raise_for_status()
