from samevents.database.base import Base
from samevents.database.models import Event, User, CalendarIntegration, LoginSession, SavedVenue
from samevents.models.sync_result import CalendarSyncReport, SyncSuccess, SyncFailure

# This ensures all models are registered with SQLAlchemy's metadata
__all__ = [
    'Base', 'Event', 'User', 'CalendarIntegration', 'LoginSession', 'SavedVenue',
    'CalendarSyncReport', 'SyncSuccess', 'SyncFailure',
]
