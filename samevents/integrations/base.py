from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from samevents.utils.dates import event_time_window


class CalendarEventData(BaseModel):
    """Provider-neutral description of what goes into an external calendar"""
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    timezone: str = 'UTC'

    @classmethod
    def from_event(cls, event, tz_name: str) -> 'CalendarEventData':
        start, end = event_time_window(event.date, tz_name)
        return cls(
            title=event.title,
            description=event.description or f"Événement au {event.venue_name}",
            start_time=start,
            end_time=end,
            location=event.venue,
            timezone=tz_name,
        )
