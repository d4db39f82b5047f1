from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from samevents.database.models import CalendarIntegration, Event, SavedVenue, User
from samevents.utils.address import extract_city_from_address, extract_venue_name_from_address
from samevents.utils.dates import month_bounds, utcnow

logger = logging.getLogger(__name__)

# Columns a caller may never write through the generic update paths
_PROTECTED_FIELDS = {'id', 'user_id', 'created_at'}


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class EventStorage:
    """Persistence for users, events, calendar integrations and saved venues.

    Every event, integration and venue read or write is scoped by the
    caller's ``user_id``; only the published-event readers cross users.
    Methods flush but never commit: the request that owns the session
    commits once it is done.
    """

    def __init__(self, session: Session):
        self.session = session

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.session.query(User).filter(User.email == email).first()

    def create_user(self, email: str, password: str = '', first_name: Optional[str] = None,
                    last_name: Optional[str] = None, profile_image_url: Optional[str] = None) -> User:
        user = User(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            profile_image_url=profile_image_url,
        )
        self.session.add(user)
        self.session.flush()
        logger.info(f"Created user {user.id} ({email})")
        return user

    def update_user(self, user_id: str, updates: Dict[str, Any]) -> Optional[User]:
        user = self.get_user(user_id)
        if not user:
            return None
        for key, value in updates.items():
            if key not in _PROTECTED_FIELDS:
                setattr(user, key, value)
        user.updated_at = utcnow()
        self.session.flush()
        return user

    # Events

    def get_user_events(self, user_id: str) -> List[Event]:
        return (
            self.session.query(Event)
            .filter(Event.user_id == user_id)
            .order_by(Event.created_at.desc())
            .all()
        )

    def get_event(self, event_id: str, user_id: str) -> Optional[Event]:
        return (
            self.session.query(Event)
            .filter(Event.id == event_id, Event.user_id == user_id)
            .first()
        )

    def create_event(self, user_id: str, event_data: Dict[str, Any]) -> Event:
        """Insert an event; ``event_data`` uses column names.

        Venue name and city are derived from the address when missing, and
        the status follows ``publish_to_website``.
        """
        data = dict(event_data)
        venue = data.get('venue') or ''
        if not data.get('venue_name'):
            data['venue_name'] = extract_venue_name_from_address(venue)
        if not data.get('city'):
            data['city'] = extract_city_from_address(venue)
        data['status'] = 'published' if data.get('publish_to_website') else 'draft'

        event = Event(user_id=user_id, **{k: v for k, v in data.items() if k not in _PROTECTED_FIELDS})
        self.session.add(event)
        self.session.flush()
        logger.info(f"Created event {event.id} for user {user_id}")
        return event

    def update_event(self, event_id: str, user_id: str, updates: Dict[str, Any]) -> Optional[Event]:
        """Merge ``updates`` into an owned event, or return None"""
        event = self.get_event(event_id, user_id)
        if not event:
            return None

        for key, value in updates.items():
            if key in _PROTECTED_FIELDS:
                continue
            setattr(event, key, value)

        if 'venue' in updates and 'venue_name' not in updates:
            event.venue_name = extract_venue_name_from_address(event.venue) or event.venue_name
        if 'venue' in updates and 'city' not in updates:
            event.city = extract_city_from_address(event.venue) or event.city

        if 'publish_to_website' in updates:
            event.status = 'published' if updates['publish_to_website'] else 'draft'

        event.updated_at = utcnow()
        self.session.flush()
        return event

    def delete_event(self, event_id: str, user_id: str) -> bool:
        event = self.get_event(event_id, user_id)
        if not event:
            return False
        self.session.delete(event)
        self.session.flush()
        logger.info(f"Deleted event {event_id} for user {user_id}")
        return True

    def set_external_ids(self, event: Event, external_ids: Dict[str, Optional[str]]) -> Event:
        """Record provider ids returned by a calendar sync"""
        columns = {
            'google': 'calendar_event_id',
            'microsoft': 'microsoft_event_id',
            'apple': 'apple_event_id',
        }
        for provider, external_id in external_ids.items():
            if provider in columns and external_id:
                setattr(event, columns[provider], external_id)
        event.updated_at = utcnow()
        self.session.flush()
        return event

    def get_event_stats(self, user_id: str, today: Optional[date] = None) -> Dict[str, int]:
        """Dashboard counters for one user, computed in a single query"""
        start, end = month_bounds(today or date.today())
        monthly, published, pending, draft, total = (
            self.session.query(
                func.count(case((Event.date.between(start, end), 1))),
                func.count(case((Event.status == 'published', 1))),
                func.count(case((Event.status == 'pending', 1))),
                func.count(case((Event.status == 'draft', 1))),
                func.count(Event.id),
            )
            .filter(Event.user_id == user_id)
            .one()
        )
        return {
            'monthlyEvents': monthly,
            'publishedEvents': published,
            'pendingEvents': pending,
            'draftEvents': draft,
            'totalEvents': total,
        }

    def get_published_events(self) -> List[Event]:
        return (
            self.session.query(Event)
            .filter(Event.status == 'published')
            .order_by(Event.date.asc())
            .all()
        )

    def get_public_event(self, event_id: str) -> Optional[Event]:
        return (
            self.session.query(Event)
            .filter(Event.id == event_id, Event.status == 'published')
            .first()
        )

    # Calendar integrations

    def get_user_calendar_integrations(self, user_id: str) -> List[CalendarIntegration]:
        return (
            self.session.query(CalendarIntegration)
            .filter(CalendarIntegration.user_id == user_id)
            .order_by(CalendarIntegration.created_at.asc())
            .all()
        )

    def get_calendar_integration(self, integration_id: str, user_id: str) -> Optional[CalendarIntegration]:
        return (
            self.session.query(CalendarIntegration)
            .filter(CalendarIntegration.id == integration_id, CalendarIntegration.user_id == user_id)
            .first()
        )

    def get_active_calendar_integration(self, user_id: str, provider: str) -> Optional[CalendarIntegration]:
        return (
            self.session.query(CalendarIntegration)
            .filter(
                CalendarIntegration.user_id == user_id,
                CalendarIntegration.provider == provider,
                CalendarIntegration.is_active.is_(True),
            )
            .order_by(CalendarIntegration.updated_at.desc())
            .first()
        )

    def create_calendar_integration(self, user_id: str, integration_data: Dict[str, Any]) -> CalendarIntegration:
        data = {k: v for k, v in integration_data.items() if k not in _PROTECTED_FIELDS}
        data['expires_at'] = _naive_utc(data.get('expires_at'))
        integration = CalendarIntegration(user_id=user_id, **data)
        self.session.add(integration)
        self.session.flush()
        logger.info(f"Created {integration.provider} calendar integration {integration.id} for user {user_id}")
        return integration

    def update_calendar_integration(self, integration_id: str, user_id: str,
                                    updates: Dict[str, Any]) -> Optional[CalendarIntegration]:
        integration = self.get_calendar_integration(integration_id, user_id)
        if not integration:
            return None
        for key, value in updates.items():
            if key in _PROTECTED_FIELDS or key == 'provider':
                continue
            if key == 'expires_at':
                value = _naive_utc(value)
            setattr(integration, key, value)
        integration.updated_at = utcnow()
        self.session.flush()
        return integration

    def delete_calendar_integration(self, integration_id: str, user_id: str) -> bool:
        integration = self.get_calendar_integration(integration_id, user_id)
        if not integration:
            return False
        self.session.delete(integration)
        self.session.flush()
        return True

    # Saved venues

    def get_saved_venues(self, user_id: str) -> List[SavedVenue]:
        return (
            self.session.query(SavedVenue)
            .filter(SavedVenue.user_id == user_id)
            .order_by(SavedVenue.last_used.desc())
            .all()
        )

    def save_venue(self, user_id: str, venue_data: Dict[str, Any]):
        """Insert a venue, or bump the usage of the one with the same Facebook id.

        Returns ``(venue, created)``.
        """
        existing = (
            self.session.query(SavedVenue)
            .filter(
                SavedVenue.user_id == user_id,
                SavedVenue.facebook_id == (venue_data.get('facebook_id') or ''),
            )
            .first()
        )

        if existing:
            existing.use_count = (existing.use_count or 0) + 1
            existing.last_used = utcnow()
            for key in ('venue_name', 'venue_address', 'facebook_url', 'profile_picture_url',
                        'website_url', 'google_maps_url'):
                setattr(existing, key, venue_data.get(key))
            self.session.flush()
            return existing, False

        data = {k: v for k, v in venue_data.items() if k not in _PROTECTED_FIELDS}
        data['facebook_id'] = data.get('facebook_id') or ''
        venue = SavedVenue(user_id=user_id, **data)
        self.session.add(venue)
        self.session.flush()
        return venue, True
