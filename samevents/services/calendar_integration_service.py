from datetime import timedelta
from typing import Callable, Iterable, List, Optional
import logging
import traceback

from samevents.config.manager import config_manager
from samevents.database.models import CalendarIntegration, Event
from samevents.integrations.apple_calendar import AppleCalendarService
from samevents.integrations.base import CalendarEventData
from samevents.integrations.google_calendar import GoogleCalendarService
from samevents.integrations.outlook_calendar import MicrosoftCalendarService, OutlookCalendarClient
from samevents.models.sync_result import CalendarSyncReport, SyncFailure, SyncSuccess
from samevents.utils.dates import utcnow

logger = logging.getLogger(__name__)


def _google_from_integration(integration: CalendarIntegration) -> GoogleCalendarService:
    return GoogleCalendarService.from_tokens(
        integration.access_token,
        integration.refresh_token,
        client_id=config_manager.get('google.client_id'),
        client_secret=config_manager.get('google.client_secret'),
        calendar_id=integration.calendar_id or config_manager.get('google.calendar_id', 'primary'),
    )


def _microsoft_from_integration(integration: CalendarIntegration) -> MicrosoftCalendarService:
    return MicrosoftCalendarService(integration.access_token, timeout=config_manager.get('app.http_timeout', 10))


def _outlook_token_client() -> Optional[OutlookCalendarClient]:
    client_id = config_manager.get('microsoft.client_id')
    client_secret = config_manager.get('microsoft.client_secret')
    if not client_id or not client_secret:
        return None
    return OutlookCalendarClient(client_id, client_secret, config_manager.get('microsoft.authority'))


class CalendarIntegrationService:
    """Pushes events to every active calendar integration of a user.

    Each provider is an independent best-effort side channel: a failure is
    logged and recorded in the returned report, and the remaining providers
    still run. Nothing is rolled back.
    """

    def __init__(self,
                 google_factory: Callable[[CalendarIntegration], object] = _google_from_integration,
                 microsoft_factory: Callable[[CalendarIntegration], object] = _microsoft_from_integration,
                 outlook_token_client: Callable[[], Optional[OutlookCalendarClient]] = _outlook_token_client,
                 apple_service: Optional[AppleCalendarService] = None,
                 timezone: Optional[str] = None):
        self.google_factory = google_factory
        self.microsoft_factory = microsoft_factory
        self.outlook_token_client = outlook_token_client
        self.apple_service = apple_service or AppleCalendarService(
            config_manager.get('app.calendar_name'),
            config_manager.get('app.calendar_description'),
        )
        self.timezone = timezone or config_manager.get('app.timezone', 'UTC')

    def _event_data(self, event: Event) -> CalendarEventData:
        return CalendarEventData.from_event(event, self.timezone)

    def _active(self, integrations: Iterable[CalendarIntegration]) -> List[CalendarIntegration]:
        return [integration for integration in integrations if integration.is_active]

    def _refresh_microsoft_token(self, integration: CalendarIntegration):
        """Refresh an expired Outlook token in place; the caller commits."""
        if not integration.refresh_token or not integration.expires_at or integration.expires_at > utcnow():
            return
        client = self.outlook_token_client()
        if client is None:
            logger.warning("Outlook token expired but no Microsoft application is configured")
            return
        result = client.refresh_access_token(integration.refresh_token)
        integration.access_token = result['access_token']
        integration.refresh_token = result.get('refresh_token', integration.refresh_token)
        integration.expires_at = utcnow() + timedelta(seconds=int(result.get('expires_in', 3600)))
        integration.updated_at = utcnow()
        logger.info(f"Refreshed Outlook token for integration {integration.id}")

    def _failure(self, action: str, integration: CalendarIntegration, error: Exception) -> SyncFailure:
        logger.error(f"Error during calendar {action} for provider {integration.provider}: {str(error)}")
        logger.debug(traceback.format_exc())
        return SyncFailure(provider=integration.provider, reason=str(error) or type(error).__name__)

    def sync_event_to_calendars(self, event: Event, integrations: Iterable[CalendarIntegration]) -> CalendarSyncReport:
        """Create ``event`` in every active integration.

        ``report.as_mapping()`` maps provider to the created id, or to the
        iCal text for Apple.
        """
        report = CalendarSyncReport()
        event_data = self._event_data(event)

        for integration in self._active(integrations):
            try:
                if integration.provider == 'google':
                    external_id = self.google_factory(integration).create_event(event_data)
                elif integration.provider == 'microsoft':
                    self._refresh_microsoft_token(integration)
                    external_id = self.microsoft_factory(integration).create_event(event_data)
                elif integration.provider == 'apple':
                    external_id = self.apple_service.generate_ical_event(event_data, event.id)
                else:
                    raise ValueError(f"Unknown calendar provider: {integration.provider}")
                report.add(SyncSuccess(provider=integration.provider, external_id=external_id))
            except Exception as e:
                report.add(self._failure('sync', integration, e))

        logger.info(f"Synced event {event.id} to {len(report.as_mapping())} calendar(s)")
        return report

    def update_event_in_calendars(self, event: Event, integrations: Iterable[CalendarIntegration]) -> CalendarSyncReport:
        """Push the current state of ``event`` to providers holding an id for it"""
        report = CalendarSyncReport()
        event_data = self._event_data(event)

        for integration in self._active(integrations):
            external_id = event.external_id(integration.provider)
            try:
                if integration.provider == 'google':
                    if not external_id:
                        continue
                    self.google_factory(integration).update_event(external_id, event_data)
                elif integration.provider == 'microsoft':
                    if not external_id:
                        continue
                    self._refresh_microsoft_token(integration)
                    self.microsoft_factory(integration).update_event(external_id, event_data)
                elif integration.provider == 'apple':
                    # Picked up by the next full export
                    pass
                report.add(SyncSuccess(provider=integration.provider, external_id=external_id))
            except Exception as e:
                report.add(self._failure('update', integration, e))

        return report

    def delete_event_from_calendars(self, event: Event, integrations: Iterable[CalendarIntegration]) -> CalendarSyncReport:
        """Remove ``event`` from providers holding an id for it"""
        report = CalendarSyncReport()

        for integration in self._active(integrations):
            external_id = event.external_id(integration.provider)
            try:
                if integration.provider == 'google':
                    if not external_id:
                        continue
                    self.google_factory(integration).delete_event(external_id)
                elif integration.provider == 'microsoft':
                    if not external_id:
                        continue
                    self._refresh_microsoft_token(integration)
                    self.microsoft_factory(integration).delete_event(external_id)
                elif integration.provider == 'apple':
                    # Dropped from the next full export
                    pass
                report.add(SyncSuccess(provider=integration.provider, external_id=external_id))
            except Exception as e:
                report.add(self._failure('delete', integration, e))

        return report

    def generate_full_calendar_export(self, events: Iterable[Event]) -> str:
        """One iCal document with a VEVENT per event"""
        return self.apple_service.generate_ical_file(
            (event, self._event_data(event)) for event in events
        )


calendar_integration_service = CalendarIntegrationService()


def get_calendar_service() -> CalendarIntegrationService:
    """FastAPI dependency for the calendar façade"""
    return calendar_integration_service
