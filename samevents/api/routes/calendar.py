from datetime import datetime, timedelta, timezone
from typing import Callable
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from samevents.api.dependencies import get_current_user, get_storage
from samevents.config.manager import config_manager
from samevents.database.connection import get_db
from samevents.database.models import User
from samevents.integrations.base import CalendarEventData
from samevents.integrations.google_calendar import GoogleCalendarService
from samevents.models.schemas import CalendarIntegrationCreate, CalendarIntegrationUpdate
from samevents.services.calendar_integration_service import CalendarIntegrationService, get_calendar_service
from samevents.services.event_storage import EventStorage
from samevents.services.notification_service import NotificationRegistry, get_notifications

logger = logging.getLogger(__name__)

router = APIRouter(tags=["calendar"])


def service_account_calendar() -> GoogleCalendarService:
    return GoogleCalendarService.from_service_account(
        config_manager.get('google.service_account_file'),
        config_manager.get('google.calendar_id', 'primary'),
    )


def get_service_account_factory() -> Callable[[], GoogleCalendarService]:
    return service_account_calendar


@router.get("/api/calendar/test")
async def test_calendar(user: User = Depends(get_current_user),
                        factory: Callable[[], GoogleCalendarService] = Depends(get_service_account_factory)):
    """Create a throwaway event through the server's service account"""
    has_credentials = {
        'serviceAccount': bool(config_manager.get('google.service_account_file')),
        'clientId': bool(config_manager.get('google.client_id')),
        'clientSecret': bool(config_manager.get('google.client_secret')),
        'calendarId': bool(config_manager.get('google.calendar_id')),
    }
    start = datetime.now(timezone.utc)
    event_data = CalendarEventData(
        title="Test de connexion Google Calendar",
        description="Test automatique de l'intégration",
        start_time=start,
        end_time=start + timedelta(hours=2),
        location="Test",
        timezone='UTC',
    )
    try:
        calendar_event_id = factory().create_event(event_data)
    except Exception as e:
        logger.error(f"Google Calendar test failed: {str(e)}")
        return JSONResponse(status_code=500, content={
            'success': False,
            'message': "Erreur lors du test de connexion",
            'error': str(e),
            'hasCredentials': has_credentials,
        })

    return {
        'success': True,
        'message': "✅ Connexion Google Calendar réussie !",
        'calendarEventId': calendar_event_id,
        'hasCredentials': has_credentials,
    }


@router.get("/api/calendar/export")
async def export_calendar(user: User = Depends(get_current_user),
                          storage: EventStorage = Depends(get_storage),
                          calendar: CalendarIntegrationService = Depends(get_calendar_service),
                          notifications: NotificationRegistry = Depends(get_notifications)):
    """Download every event of the caller as one .ics file"""
    events = storage.get_user_events(user.id)
    ical = calendar.generate_full_calendar_export(events)
    await notifications.notify_calendar_synced(user.id, 'Apple Calendar', len(events))
    return Response(
        content=ical,
        media_type='text/calendar; charset=utf-8',
        headers={'Content-Disposition': 'attachment; filename="sam-hebert-evenements.ics"'},
    )


@router.get("/api/calendar/integrations")
@router.get("/api/calendar-integrations")
async def list_integrations(user: User = Depends(get_current_user),
                            storage: EventStorage = Depends(get_storage)):
    return [integration.to_dict() for integration in storage.get_user_calendar_integrations(user.id)]


@router.post("/api/calendar/integrations")
@router.post("/api/calendar-integrations")
async def create_integration(payload: CalendarIntegrationCreate,
                             user: User = Depends(get_current_user),
                             db: Session = Depends(get_db),
                             storage: EventStorage = Depends(get_storage)):
    integration = storage.create_calendar_integration(user.id, payload.model_dump())
    db.commit()
    return {
        'integration': integration.to_dict(),
        'message': "Intégration calendrier créée avec succès",
    }


@router.patch("/api/calendar/integrations/{integration_id}")
@router.patch("/api/calendar-integrations/{integration_id}")
async def update_integration(integration_id: str,
                             payload: CalendarIntegrationUpdate,
                             user: User = Depends(get_current_user),
                             db: Session = Depends(get_db),
                             storage: EventStorage = Depends(get_storage)):
    """Toggle or refresh an integration; an inactive one is skipped by every sync"""
    integration = storage.update_calendar_integration(
        integration_id, user.id, payload.model_dump(exclude_unset=True)
    )
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    db.commit()
    return {
        'integration': integration.to_dict(),
        'message': "Intégration mise à jour avec succès",
    }


@router.delete("/api/calendar/integrations/{integration_id}")
@router.delete("/api/calendar-integrations/{integration_id}")
async def delete_integration(integration_id: str,
                             user: User = Depends(get_current_user),
                             db: Session = Depends(get_db),
                             storage: EventStorage = Depends(get_storage)):
    if not storage.delete_calendar_integration(integration_id, user.id):
        raise HTTPException(status_code=404, detail="Integration not found")
    db.commit()
    return {'message': "Intégration supprimée avec succès"}
