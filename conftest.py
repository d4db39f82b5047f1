import os
import tempfile

# Point the default engine at a scratch database before samevents is imported
_scratch_dir = tempfile.mkdtemp(prefix='samevents-tests-')
os.environ['DATABASE_URL'] = f"sqlite:///{os.path.join(_scratch_dir, 'default.db')}"
os.environ['SECURE_COOKIES'] = 'false'

import pytest
from fastapi.testclient import TestClient

from samevents.api.dependencies import get_token_verifier
from samevents.api.main import app
from samevents.database.connection import DatabaseManager, get_db
from samevents.integrations.apple_calendar import AppleCalendarService
from samevents.services.calendar_integration_service import CalendarIntegrationService, get_calendar_service
from samevents.services.notification_service import NotificationRegistry, get_notifications

INVALID_TOKEN = 'invalid-token'


class FakeProviderCalendar:
    """Records calls the way GoogleCalendarService / MicrosoftCalendarService would receive them"""

    def __init__(self, provider):
        self.provider = provider
        self.created = []
        self.updated = []
        self.deleted = []
        self.tokens = []

    def for_integration(self, integration):
        self.tokens.append(integration.access_token)
        if integration.access_token == INVALID_TOKEN:
            return _RejectingCalendar(self.provider)
        return self

    def create_event(self, event_data):
        self.created.append(event_data)
        return f"{self.provider}-event-{len(self.created)}"

    def update_event(self, event_id, event_data):
        self.updated.append((event_id, event_data))

    def delete_event(self, event_id):
        self.deleted.append(event_id)


class _RejectingCalendar:
    def __init__(self, provider):
        self.provider = provider

    def _reject(self, *args):
        raise PermissionError(f"{self.provider}: invalid credentials")

    create_event = update_event = delete_event = _reject


def fake_firebase_verifier(token):
    if token == INVALID_TOKEN:
        raise ValueError("Invalid Firebase ID token")
    email = token.split(':', 1)[1] if token.startswith('token:') else 'sam@example.com'
    return {'email': email, 'name': 'Sam Hébert', 'picture': 'https://example.com/sam.jpg'}


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'test.db'}")
    yield manager
    manager.engine.dispose()


@pytest.fixture
def session(db_manager):
    with db_manager.get_session() as s:
        yield s


@pytest.fixture
def fake_google():
    return FakeProviderCalendar('google')


@pytest.fixture
def fake_microsoft():
    return FakeProviderCalendar('microsoft')


@pytest.fixture
def calendar_service(fake_google, fake_microsoft):
    return CalendarIntegrationService(
        google_factory=fake_google.for_integration,
        microsoft_factory=fake_microsoft.for_integration,
        outlook_token_client=lambda: None,
        apple_service=AppleCalendarService('Sam Hébert - Événements', 'Calendrier des spectacles'),
        timezone='America/Toronto',
    )


@pytest.fixture
def notifications():
    return NotificationRegistry()


@pytest.fixture
def client(db_manager, calendar_service, notifications):
    def override_get_db():
        db = db_manager.get_session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_calendar_service] = lambda: calendar_service
    app.dependency_overrides[get_notifications] = lambda: notifications
    app.dependency_overrides[get_token_verifier] = lambda: fake_firebase_verifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def register(client, email='sam@example.com', password='secret123'):
    """Register and keep the session cookie on ``client``"""
    client.cookies.clear()
    response = client.post('/api/auth/register', json={
        'email': email,
        'password': password,
        'confirmPassword': password,
        'firstName': 'Sam',
        'lastName': 'Hébert',
    })
    assert response.status_code == 201, response.text
    return response.json()


def add_integration(client, provider='google', access_token='good-token', is_active=True):
    response = client.post('/api/calendar/integrations', json={
        'provider': provider,
        'accessToken': access_token,
        'refreshToken': 'refresh-token',
        'isActive': is_active,
    })
    assert response.status_code == 200, response.text
    return response.json()['integration']


def event_payload(**overrides):
    payload = {
        'title': 'La soirée du rire de Granby',
        'venue': 'Théâtre Palace, 135 Rue Principale, Granby, QC J2G 2V1',
        'date': '2025-09-20',
        'addToCalendar': False,
        'publishToWebsite': False,
    }
    payload.update(overrides)
    return payload
