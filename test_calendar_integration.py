from datetime import date, datetime, timedelta

import pytest

from conftest import INVALID_TOKEN, FakeProviderCalendar, add_integration, event_payload, register
from samevents.database.models import CalendarIntegration, Event, User
from samevents.integrations.apple_calendar import AppleCalendarService
from samevents.integrations.base import CalendarEventData
from samevents.models.sync_result import SyncFailure, SyncSuccess
from samevents.services.calendar_integration_service import CalendarIntegrationService
from samevents.utils.dates import utcnow


def make_event(session, user, title='Spectacle', day=date(2025, 9, 20)):
    event = Event(
        user=user,
        title=title,
        venue_name='Le Bordel',
        venue='Le Bordel, 312 Ontario St E, Montréal, QC H2X 1H6',
        city='Montréal',
        date=day,
        status='draft',
    )
    session.add(event)
    session.flush()
    return event


def make_user(session, email='sam@example.com'):
    user = User(email=email, password='')
    session.add(user)
    session.flush()
    return user


def integration(provider, access_token='good-token', is_active=True, **kwargs):
    return CalendarIntegration(provider=provider, access_token=access_token, is_active=is_active, **kwargs)


def test_sync_reports_one_outcome_per_active_provider(session, calendar_service, fake_google, fake_microsoft):
    user = make_user(session)
    event = make_event(session, user)

    report = calendar_service.sync_event_to_calendars(event, [
        integration('google'),
        integration('microsoft'),
        integration('apple'),
    ])

    assert report.successful
    assert [o.provider for o in report.outcomes] == ['google', 'microsoft', 'apple']
    mapping = report.as_mapping()
    assert mapping['google'] == 'google-event-1'
    assert mapping['microsoft'] == 'microsoft-event-1'
    assert 'BEGIN:VCALENDAR' in mapping['apple']

    sent = fake_google.created[0]
    assert sent.title == 'Spectacle'
    assert sent.location == event.venue
    assert sent.description == 'Événement au Le Bordel'
    assert sent.end_time - sent.start_time == timedelta(hours=2)
    assert sent.start_time.isoformat() == '2025-09-20T00:00:00-04:00'


def test_one_provider_failure_does_not_stop_the_others(session, calendar_service, fake_microsoft):
    user = make_user(session)
    event = make_event(session, user)

    report = calendar_service.sync_event_to_calendars(event, [
        integration('google', access_token=INVALID_TOKEN),
        integration('microsoft'),
    ])

    google = report.get('google')
    assert isinstance(google, SyncFailure)
    assert 'invalid credentials' in google.reason
    assert isinstance(report.get('microsoft'), SyncSuccess)
    assert report.successful
    assert len(fake_microsoft.created) == 1


def test_inactive_integration_is_skipped(session, calendar_service, fake_google):
    user = make_user(session)
    event = make_event(session, user)

    report = calendar_service.sync_event_to_calendars(event, [integration('google', is_active=False)])

    assert report.outcomes == []
    assert not report.successful
    assert fake_google.created == []


def test_update_and_delete_only_touch_providers_with_an_id(session, calendar_service, fake_google, fake_microsoft):
    user = make_user(session)
    event = make_event(session, user)
    event.calendar_event_id = 'g-123'
    integrations = [integration('google'), integration('microsoft')]

    update_report = calendar_service.update_event_in_calendars(event, integrations)
    delete_report = calendar_service.delete_event_from_calendars(event, integrations)

    assert [o.provider for o in update_report.outcomes] == ['google']
    assert fake_google.updated[0][0] == 'g-123'
    assert fake_microsoft.updated == []
    assert fake_google.deleted == ['g-123']
    assert delete_report.successful


def test_expired_outlook_token_is_refreshed_before_the_call(session, fake_google, fake_microsoft):
    class FakeOutlookClient:
        def refresh_access_token(self, refresh_token):
            assert refresh_token == 'refresh-me'
            return {'access_token': 'fresh-token', 'refresh_token': 'next-refresh', 'expires_in': 3600}

    service = CalendarIntegrationService(
        google_factory=fake_google.for_integration,
        microsoft_factory=fake_microsoft.for_integration,
        outlook_token_client=FakeOutlookClient,
        apple_service=AppleCalendarService(),
        timezone='America/Toronto',
    )
    user = make_user(session)
    event = make_event(session, user)
    outlook = integration('microsoft', access_token='stale-token', refresh_token='refresh-me',
                          expires_at=utcnow() - timedelta(minutes=5))

    report = service.sync_event_to_calendars(event, [outlook])

    assert report.successful
    assert fake_microsoft.tokens == ['fresh-token']
    assert outlook.refresh_token == 'next-refresh'
    assert outlook.expires_at > utcnow()


def test_full_export_has_one_vevent_per_event(session, calendar_service):
    user = make_user(session)
    events = [make_event(session, user, title=f'Spectacle {i}', day=date(2025, 10, i + 1)) for i in range(4)]

    ical = calendar_service.generate_full_calendar_export(events)

    assert ical.count('BEGIN:VEVENT') == 4
    assert 'X-WR-CALNAME:Sam Hébert - Événements' in ical
    for event in events:
        assert f'UID:{event.id}' in ical


def test_single_ical_event_document():
    service = AppleCalendarService()
    start = datetime(2025, 9, 20, 20, 0)
    data = CalendarEventData(title='Open Mic', start_time=start, end_time=start + timedelta(hours=2),
                             location='Montréal')

    ical = service.generate_ical_event(data, 'event-1')

    assert ical.count('BEGIN:VEVENT') == 1
    assert 'UID:event-1' in ical
    assert 'SUMMARY:Open Mic' in ical


def test_create_event_with_google_integration_stores_calendar_id(client, fake_google):
    register(client)
    add_integration(client, 'google')

    response = client.post('/api/events', json=event_payload(addToCalendar=True))

    assert response.status_code == 200
    body = response.json()
    assert body['calendarIntegration']['requested'] is True
    assert body['calendarIntegration']['successful'] is True
    assert body['calendarIntegration']['calendarEventId'] == 'google-event-1'
    assert body['event']['calendarEventId'] == 'google-event-1'
    assert len(fake_google.created) == 1


def test_create_event_with_invalid_google_credentials_still_succeeds(client):
    register(client)
    add_integration(client, 'google', access_token=INVALID_TOKEN)

    response = client.post('/api/events', json=event_payload(addToCalendar=True))

    assert response.status_code == 200
    body = response.json()
    assert body['calendarIntegration']['successful'] is False
    assert body['calendarIntegration']['calendarEventId'] is None
    assert body['calendarIntegration']['providers']['google']['successful'] is False
    assert len(client.get('/api/events').json()) == 1


def test_create_event_without_any_integration(client):
    register(client)

    body = client.post('/api/events', json=event_payload(addToCalendar=True)).json()

    assert body['calendarIntegration']['successful'] is False
    assert body['calendarIntegration']['providers'] == {}


def test_deactivated_integration_is_excluded_from_next_sync(client, fake_google):
    register(client)
    created = add_integration(client, 'google')

    response = client.patch(f"/api/calendar-integrations/{created['id']}", json={'isActive': False})
    assert response.status_code == 200
    assert response.json()['integration']['isActive'] is False

    body = client.post('/api/events', json=event_payload(addToCalendar=True)).json()

    assert body['calendarIntegration']['successful'] is False
    assert fake_google.created == []


def test_apple_sync_records_event_id_and_hides_ical(client):
    register(client)
    add_integration(client, 'apple')

    body = client.post('/api/events', json=event_payload(addToCalendar=True)).json()

    assert body['calendarIntegration']['successful'] is True
    assert body['calendarIntegration']['providers']['apple'] == {'successful': True, 'externalId': None}
    assert body['event']['appleEventId'] == body['event']['id']


def test_update_pushes_changes_to_synced_calendar(client, fake_google):
    register(client)
    add_integration(client, 'google')
    event = client.post('/api/events', json=event_payload(addToCalendar=True)).json()['event']

    response = client.put(f"/api/events/{event['id']}", json={'title': 'Nouveau titre'})

    assert response.status_code == 200
    assert 'mis à jour dans le calendrier' in response.json()['message']
    event_id, data = fake_google.updated[0]
    assert event_id == 'google-event-1'
    assert data.title == 'Nouveau titre'


def test_first_sync_on_update(client, fake_google):
    register(client)
    add_integration(client, 'google')
    event = client.post('/api/events', json=event_payload()).json()['event']
    assert fake_google.created == []

    body = client.put(f"/api/events/{event['id']}", json={'addToCalendar': True}).json()

    assert body['event']['calendarEventId'] == 'google-event-1'
    assert body['calendarIntegration']['successful'] is True


def test_delete_removes_event_from_calendar(client, fake_google):
    register(client)
    add_integration(client, 'google')
    event = client.post('/api/events', json=event_payload(addToCalendar=True)).json()['event']

    response = client.delete(f"/api/events/{event['id']}")

    assert response.status_code == 200
    assert fake_google.deleted == ['google-event-1']


def test_export_endpoint_returns_ics(client):
    register(client)
    for day in ('2025-09-20', '2025-09-27', '2025-10-04'):
        client.post('/api/events', json=event_payload(date=day))

    response = client.get('/api/calendar/export')

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/calendar')
    assert response.text.count('BEGIN:VEVENT') == 3


def test_integrations_are_scoped_to_their_owner(client):
    register(client, 'first@example.com')
    created = add_integration(client, 'google')
    assert 'accessToken' not in created

    register(client, 'second@example.com')
    assert client.get('/api/calendar/integrations').json() == []
    assert client.patch(f"/api/calendar/integrations/{created['id']}", json={'isActive': False}).status_code == 404
    response = client.delete(f"/api/calendar-integrations/{created['id']}")
    assert response.status_code == 404
    assert response.json() == {'message': 'Integration not found'}


@pytest.mark.parametrize('body', [{'accessToken': None}, {'isActive': None}])
def test_integration_update_rejects_null_required_fields(client, body):
    register(client)
    created = add_integration(client, 'google')

    response = client.patch(f"/api/calendar/integrations/{created['id']}", json=body)

    assert response.status_code == 400
    integrations = client.get('/api/calendar/integrations').json()
    assert integrations[0]['isActive'] is True


def test_unknown_provider_is_rejected(client):
    register(client)
    response = client.post('/api/calendar/integrations', json={'provider': 'yahoo', 'accessToken': 'x'})
    assert response.status_code == 400


@pytest.mark.parametrize('fail', [False, True])
def test_calendar_test_endpoint(client, fail):
    from samevents.api.routes.calendar import get_service_account_factory
    from samevents.api.main import app

    calendar = FakeProviderCalendar('google')

    def factory():
        if fail:
            raise ValueError("Service account JSON file not found at ''")
        return calendar

    app.dependency_overrides[get_service_account_factory] = lambda: factory
    register(client)

    response = client.get('/api/calendar/test')

    if fail:
        assert response.status_code == 500
        assert response.json()['success'] is False
    else:
        assert response.status_code == 200
        assert response.json()['calendarEventId'] == 'google-event-1'
