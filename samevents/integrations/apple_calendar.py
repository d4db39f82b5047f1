import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple

from icalendar import Calendar as ICalendar, Event as ICalEvent

from samevents.integrations.base import CalendarEventData

PRODID = '-//Sam Hebert//Evenements//FR'


class AppleCalendarService:
    """Apple Calendar has no push API here: events travel as iCal text."""

    def __init__(self, calendar_name: str = 'Sam Hébert - Événements',
                 calendar_description: str = 'Calendrier des spectacles de Sam Hébert'):
        self.calendar_name = calendar_name
        self.calendar_description = calendar_description

    def _new_calendar(self, with_description: bool = False) -> ICalendar:
        calendar = ICalendar()
        calendar.add('prodid', PRODID)
        calendar.add('version', '2.0')
        calendar.add('x-wr-calname', self.calendar_name)
        if with_description:
            calendar.add('x-wr-caldesc', self.calendar_description)
        return calendar

    def _vevent(self, event_data: CalendarEventData, uid: str,
                created: Optional[datetime] = None, last_modified: Optional[datetime] = None) -> ICalEvent:
        vevent = ICalEvent()
        vevent.add('uid', uid)
        vevent.add('dtstamp', datetime.now(timezone.utc))
        vevent.add('dtstart', event_data.start_time)
        vevent.add('dtend', event_data.end_time)
        vevent.add('summary', event_data.title)
        vevent.add('description', event_data.description or '')
        vevent.add('location', event_data.location or '')
        if created:
            vevent.add('created', _as_utc(created))
        if last_modified:
            vevent.add('last-modified', _as_utc(last_modified))
        return vevent

    def generate_ical_event(self, event_data: CalendarEventData, event_id: Optional[str] = None) -> str:
        """A one-event calendar document, ready to import"""
        calendar = self._new_calendar()
        calendar.add_component(self._vevent(event_data, event_id or str(uuid.uuid4())))
        return calendar.to_ical().decode('utf-8')

    def generate_ical_file(self, events: Iterable[Tuple[object, CalendarEventData]]) -> str:
        """One document holding every (event, event_data) pair"""
        calendar = self._new_calendar(with_description=True)
        for event, event_data in events:
            calendar.add_component(self._vevent(
                event_data,
                event.id,
                created=event.created_at,
                last_modified=event.updated_at,
            ))
        return calendar.to_ical().decode('utf-8')


def _as_utc(value: datetime) -> datetime:
    # Stored timestamps are naive UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
