from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Boolean, ForeignKey, JSON, CheckConstraint, Index
from sqlalchemy.orm import relationship
import uuid

from samevents.database.base import Base
from samevents.utils.dates import utcnow

EVENT_STATUSES = ('draft', 'pending', 'published')
CALENDAR_PROVIDERS = ('google', 'microsoft', 'apple')


def _uuid() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class LoginSession(Base):
    __tablename__ = 'sessions'

    sid = Column(String, primary_key=True)
    sess = Column(JSON, nullable=False)
    expire = Column(DateTime, nullable=False)

    __table_args__ = (Index('IDX_session_expire', 'expire'),)


class User(Base):
    __tablename__ = 'users'

    id = Column(String, primary_key=True, default=_uuid)
    email = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False, default='')  # bcrypt hash, empty for Google sign-in
    first_name = Column(String)
    last_name = Column(String)
    profile_image_url = Column(String)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    events = relationship("Event", back_populates="user", cascade="all, delete-orphan")
    calendar_integrations = relationship("CalendarIntegration", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'profileImageUrl': self.profile_image_url,
        }


class Event(Base):
    __tablename__ = 'events'

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey('users.id'), nullable=False, index=True)
    title = Column(Text, nullable=False)
    venue_name = Column(Text, nullable=False)
    description = Column(Text)
    date = Column(Date, nullable=False)
    venue = Column(Text, nullable=False)  # full address
    city = Column(Text, nullable=False)
    tickets_url = Column(Text)
    add_to_calendar = Column(Boolean, default=False)
    publish_to_website = Column(Boolean, default=False)
    send_notification = Column(Boolean, default=False)
    status = Column(String, nullable=False, default='draft')
    calendar_event_id = Column(String)  # Google
    microsoft_event_id = Column(String)
    apple_event_id = Column(String)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="events")

    __table_args__ = (
        CheckConstraint(f"status IN {EVENT_STATUSES}", name='ck_events_status'),
    )

    def external_id(self, provider: str):
        return {
            'google': self.calendar_event_id,
            'microsoft': self.microsoft_event_id,
            'apple': self.apple_event_id,
        }.get(provider)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'title': self.title,
            'venueName': self.venue_name,
            'description': self.description,
            'date': _iso(self.date),
            'venue': self.venue,
            'city': self.city,
            'ticketsUrl': self.tickets_url,
            'addToCalendar': self.add_to_calendar,
            'publishToWebsite': self.publish_to_website,
            'sendNotification': self.send_notification,
            'status': self.status,
            'calendarEventId': self.calendar_event_id,
            'microsoftEventId': self.microsoft_event_id,
            'appleEventId': self.apple_event_id,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class CalendarIntegration(Base):
    __tablename__ = 'calendar_integrations'

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey('users.id'), nullable=False, index=True)
    provider = Column(String, nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime)
    calendar_id = Column(String)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="calendar_integrations")

    __table_args__ = (
        CheckConstraint(f"provider IN {CALENDAR_PROVIDERS}", name='ck_calendar_integrations_provider'),
    )

    def to_dict(self):
        # Tokens never leave the server
        return {
            'id': self.id,
            'userId': self.user_id,
            'provider': self.provider,
            'calendarId': self.calendar_id,
            'isActive': self.is_active,
            'expiresAt': _iso(self.expires_at),
            'hasRefreshToken': bool(self.refresh_token),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class SavedVenue(Base):
    __tablename__ = 'saved_venues'

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey('users.id'), nullable=False, index=True)
    venue_name = Column(Text, nullable=False)
    venue_address = Column(Text)
    facebook_id = Column(Text)
    facebook_url = Column(Text)
    profile_picture_url = Column(Text)
    website_url = Column(Text)
    google_maps_url = Column(Text)
    use_count = Column(Integer, default=1)
    last_used = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'venueName': self.venue_name,
            'venueAddress': self.venue_address,
            'facebookId': self.facebook_id,
            'facebookUrl': self.facebook_url,
            'profilePictureUrl': self.profile_picture_url,
            'websiteUrl': self.website_url,
            'googleMapsUrl': self.google_maps_url,
            'useCount': self.use_count,
            'lastUsed': _iso(self.last_used),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
