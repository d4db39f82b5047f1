from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from samevents.api.dependencies import get_current_user, get_storage
from samevents.database.connection import get_db
from samevents.database.models import Event, User
from samevents.models.schemas import EventCreate, EventUpdate
from samevents.models.sync_result import CalendarSyncReport
from samevents.services.calendar_integration_service import CalendarIntegrationService, get_calendar_service
from samevents.services.event_storage import EventStorage
from samevents.services.notification_service import NotificationRegistry, get_notifications
from samevents.utils.dates import format_french_date

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


def event_with_display_dates(event: Event) -> Dict[str, Any]:
    data = event.to_dict()
    data['displayDate'] = format_french_date(event.date)
    data['displayCreatedAt'] = format_french_date(event.created_at)
    data['displayUpdatedAt'] = format_french_date(event.updated_at)
    return data


def _store_sync_ids(storage: EventStorage, event: Event, report: CalendarSyncReport):
    external_ids = report.as_mapping()
    if 'apple' in external_ids:
        # The iCal text is not an id; the VEVENT UID is the event id
        external_ids['apple'] = event.id
    storage.set_external_ids(event, external_ids)


def _integration_summary(requested: bool, event: Event, report: Optional[CalendarSyncReport]) -> Dict[str, Any]:
    return {
        'requested': requested,
        'successful': bool(report and report.successful),
        'calendarEventId': event.calendar_event_id,
        'providers': report.summary() if report else {},
    }


@router.get("/api/events")
async def list_events(user: User = Depends(get_current_user),
                      storage: EventStorage = Depends(get_storage)):
    """List the caller's events, newest first"""
    return [event_with_display_dates(event) for event in storage.get_user_events(user.id)]


@router.get("/api/events/stats")
async def event_stats(user: User = Depends(get_current_user),
                      storage: EventStorage = Depends(get_storage)):
    return storage.get_event_stats(user.id)


@router.get("/api/public/events")
async def public_events(storage: EventStorage = Depends(get_storage)):
    """Published events of every user, for the public website"""
    return [event_with_display_dates(event) for event in storage.get_published_events()]


@router.get("/api/events/public/{event_id}")
async def public_event(event_id: str, storage: EventStorage = Depends(get_storage)):
    event = storage.get_public_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event_with_display_dates(event)


@router.get("/api/events/{event_id}")
async def get_event(event_id: str,
                    user: User = Depends(get_current_user),
                    storage: EventStorage = Depends(get_storage)):
    event = storage.get_event(event_id, user.id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event_with_display_dates(event)


@router.post("/api/events")
async def create_event(payload: EventCreate,
                       user: User = Depends(get_current_user),
                       db: Session = Depends(get_db),
                       storage: EventStorage = Depends(get_storage),
                       calendar: CalendarIntegrationService = Depends(get_calendar_service),
                       notifications: NotificationRegistry = Depends(get_notifications)):
    """Create an event, then push it to the caller's calendars when asked.

    Calendar failures never fail the request; they show up in
    ``calendarIntegration``.
    """
    logger.info(f"Creating event '{payload.title}' for user {user.id}")
    event = storage.create_event(user.id, payload.model_dump())

    report = None
    if payload.add_to_calendar:
        report = calendar.sync_event_to_calendars(event, storage.get_user_calendar_integrations(user.id))
        _store_sync_ids(storage, event, report)

    db.commit()

    message = "Événement créé avec succès"
    if payload.add_to_calendar:
        if report and report.successful:
            message = "Événement créé et ajouté au calendrier avec succès 🤠!"
        else:
            message = ("Événement créé. Pour l'ajouter à votre calendrier: allez dans "
                       "Paramètres > Intégrations calendrier et connectez votre compte.")

    event_data = event_with_display_dates(event)
    await notifications.notify_event_created(user.id, event.title, event_data)

    return {
        'event': event_data,
        'message': message,
        'calendarIntegration': _integration_summary(payload.add_to_calendar, event, report),
    }


@router.put("/api/events/{event_id}")
async def update_event(event_id: str,
                       payload: EventUpdate,
                       user: User = Depends(get_current_user),
                       db: Session = Depends(get_db),
                       storage: EventStorage = Depends(get_storage),
                       calendar: CalendarIntegrationService = Depends(get_calendar_service),
                       notifications: NotificationRegistry = Depends(get_notifications)):
    updates = payload.model_dump(exclude_unset=True)
    event = storage.get_event(event_id, user.id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    already_synced = any(event.external_id(p) for p in ('google', 'microsoft', 'apple'))
    event = storage.update_event(event_id, user.id, updates)

    report = None
    suffix = ""
    integrations = storage.get_user_calendar_integrations(user.id)
    if already_synced and updates.get('add_to_calendar') is not False:
        report = calendar.update_event_in_calendars(event, integrations)
        if report.outcomes:
            suffix = " et mis à jour dans le calendrier" if report.successful else " (erreur lors de la mise à jour du calendrier)"
    elif updates.get('add_to_calendar') and not already_synced:
        report = calendar.sync_event_to_calendars(event, integrations)
        _store_sync_ids(storage, event, report)
        if report.successful:
            suffix = " et ajouté au calendrier"

    db.commit()

    event_data = event_with_display_dates(event)
    await notifications.notify_event_updated(user.id, event.title, event_data)

    return {
        'event': event_data,
        'message': f"Événement mis à jour avec succès{suffix}",
        'calendarIntegration': _integration_summary(bool(event.add_to_calendar), event, report),
    }


@router.delete("/api/events/{event_id}")
async def delete_event(event_id: str,
                       user: User = Depends(get_current_user),
                       db: Session = Depends(get_db),
                       storage: EventStorage = Depends(get_storage),
                       calendar: CalendarIntegrationService = Depends(get_calendar_service),
                       notifications: NotificationRegistry = Depends(get_notifications)):
    event = storage.get_event(event_id, user.id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    title = event.title
    report = calendar.delete_event_from_calendars(event, storage.get_user_calendar_integrations(user.id))
    storage.delete_event(event_id, user.id)
    db.commit()

    await notifications.notify_event_deleted(user.id, title)

    return {
        'message': "Événement supprimé avec succès",
        'calendarIntegration': {'providers': report.summary()},
    }
