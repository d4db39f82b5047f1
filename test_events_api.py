from datetime import date

import pytest

from conftest import event_payload, register
from samevents.database.models import Event
from samevents.services.event_storage import EventStorage


def test_requests_without_session_are_unauthorized(client):
    response = client.get('/api/events')
    assert response.status_code == 401
    assert response.json() == {'message': 'Unauthorized'}


def test_create_event_derives_venue_name_and_city(client):
    register(client)

    response = client.post('/api/events', json=event_payload())

    assert response.status_code == 200
    body = response.json()
    assert body['message'] == 'Événement créé avec succès'
    event = body['event']
    assert event['venueName'] == 'Théâtre Palace'
    assert event['city'] == 'Granby'
    assert event['status'] == 'draft'
    assert event['displayDate'] == '20 SEPTEMBRE 2025'
    assert body['calendarIntegration']['requested'] is False


def test_explicit_venue_name_is_kept(client):
    register(client)
    body = client.post('/api/events', json=event_payload(venueName='Le Palace', city='Granby')).json()
    assert body['event']['venueName'] == 'Le Palace'


def test_invalid_payload_is_a_400_with_errors(client):
    register(client)

    response = client.post('/api/events', json={'title': '', 'date': 'not-a-date'})

    assert response.status_code == 400
    body = response.json()
    assert body['message'] == 'Invalid request data'
    fields = {tuple(error['loc'])[-1] for error in body['errors']}
    assert {'title', 'date', 'venue'} <= fields


def test_list_and_get_own_events(client):
    register(client)
    first = client.post('/api/events', json=event_payload(title='Premier')).json()['event']
    client.post('/api/events', json=event_payload(title='Deuxième'))

    events = client.get('/api/events').json()
    assert {e['title'] for e in events} == {'Premier', 'Deuxième'}

    response = client.get(f"/api/events/{first['id']}")
    assert response.status_code == 200
    assert response.json()['title'] == 'Premier'


def test_other_users_events_are_not_reachable(client, db_manager):
    register(client, 'owner@example.com')
    event = client.post('/api/events', json=event_payload(title='Privé')).json()['event']

    register(client, 'intruder@example.com')

    for response in (
        client.get(f"/api/events/{event['id']}"),
        client.put(f"/api/events/{event['id']}", json={'title': 'Piraté'}),
        client.delete(f"/api/events/{event['id']}"),
    ):
        assert response.status_code == 404
        assert response.json() == {'message': 'Event not found'}
        assert 'Privé' not in response.text

    assert client.get('/api/events').json() == []

    with db_manager.get_session() as session:
        stored = session.get(Event, event['id'])
        assert stored is not None
        assert stored.title == 'Privé'


def test_update_merges_fields_and_recomputes_status(client):
    register(client)
    event = client.post('/api/events', json=event_payload()).json()['event']

    body = client.put(f"/api/events/{event['id']}", json={'publishToWebsite': True}).json()
    assert body['event']['status'] == 'published'
    assert body['event']['title'] == event['title']

    body = client.put(f"/api/events/{event['id']}", json={'status': 'pending'}).json()
    assert body['event']['status'] == 'pending'

    body = client.put(f"/api/events/{event['id']}", json={'publishToWebsite': False}).json()
    assert body['event']['status'] == 'draft'


def test_update_of_venue_rederives_city(client):
    register(client)
    event = client.post('/api/events', json=event_payload()).json()['event']

    body = client.put(f"/api/events/{event['id']}", json={
        'venue': 'Le Bordel Comédie Club, 312 Ontario St E, Montréal, QC H2X 1H6',
    }).json()

    assert body['event']['city'] == 'Montréal'
    assert body['event']['venueName'] == 'Le Bordel Comédie Club'


@pytest.mark.parametrize('field', ['title', 'venue', 'date', 'venueName', 'city', 'status', 'publishToWebsite'])
def test_update_with_null_required_field_is_a_400(client, field):
    register(client)
    event = client.post('/api/events', json=event_payload()).json()['event']

    response = client.put(f"/api/events/{event['id']}", json={field: None})

    assert response.status_code == 400
    assert response.json()['message'] == 'Invalid request data'
    assert client.get(f"/api/events/{event['id']}").json()['title'] == event['title']


def test_update_with_null_optional_field_clears_it(client):
    register(client)
    event = client.post('/api/events', json=event_payload(description='Soirée humour')).json()['event']

    body = client.put(f"/api/events/{event['id']}", json={'description': None}).json()

    assert body['event']['description'] is None


def test_delete_event(client):
    register(client)
    event = client.post('/api/events', json=event_payload()).json()['event']

    response = client.delete(f"/api/events/{event['id']}")

    assert response.status_code == 200
    assert client.get(f"/api/events/{event['id']}").status_code == 404


def test_public_endpoints_only_show_published_events(client):
    register(client)
    published = client.post('/api/events', json=event_payload(title='Public', publishToWebsite=True)).json()['event']
    draft = client.post('/api/events', json=event_payload(title='Brouillon')).json()['event']
    client.cookies.clear()

    events = client.get('/api/public/events').json()
    assert [e['title'] for e in events] == ['Public']
    assert events[0]['displayDate'] == '20 SEPTEMBRE 2025'

    assert client.get(f"/api/events/public/{published['id']}").status_code == 200
    assert client.get(f"/api/events/public/{draft['id']}").status_code == 404


def test_stats_count_by_month_and_status(session):
    storage = EventStorage(session)
    user = storage.create_user('stats@example.com')
    storage.create_event(user.id, {'title': 'A', 'venue': 'X, Chambly, QC', 'date': date(2025, 9, 5), 'publish_to_website': True})
    storage.create_event(user.id, {'title': 'B', 'venue': 'X, Chambly, QC', 'date': date(2025, 9, 30)})
    pending = storage.create_event(user.id, {'title': 'C', 'venue': 'X, Chambly, QC', 'date': date(2025, 10, 1)})
    storage.update_event(pending.id, user.id, {'status': 'pending'})

    stats = storage.get_event_stats(user.id, today=date(2025, 9, 15))

    assert stats == {
        'monthlyEvents': 2,
        'publishedEvents': 1,
        'pendingEvents': 1,
        'draftEvents': 1,
        'totalEvents': 3,
    }


def test_stats_ignore_other_users_and_start_at_zero(session):
    storage = EventStorage(session)
    owner = storage.create_user('owner@example.com')
    other = storage.create_user('other@example.com')
    storage.create_event(other.id, {'title': 'A', 'venue': 'X, Chambly, QC', 'date': date(2025, 9, 5)})

    assert storage.get_event_stats(owner.id, today=date(2025, 9, 15)) == {
        'monthlyEvents': 0,
        'publishedEvents': 0,
        'pendingEvents': 0,
        'draftEvents': 0,
        'totalEvents': 0,
    }
    assert storage.get_event_stats(other.id, today=date(2025, 9, 15))['monthlyEvents'] == 1


def test_stats_endpoint(client):
    register(client)
    client.post('/api/events', json=event_payload(publishToWebsite=True))

    stats = client.get('/api/events/stats').json()

    assert stats['publishedEvents'] == 1
    assert stats['totalEvents'] == 1


def test_set_external_ids_ignores_empty_values(session):
    storage = EventStorage(session)
    user = storage.create_user('ids@example.com')
    event = storage.create_event(user.id, {'title': 'A', 'venue': 'Bar, Laval, QC', 'date': date(2025, 9, 5)})

    storage.set_external_ids(event, {'google': 'g-1', 'microsoft': None, 'unknown': 'x'})

    assert event.calendar_event_id == 'g-1'
    assert event.microsoft_event_id is None


def test_health(client):
    assert client.get('/health').json()['status'] == 'ok'
