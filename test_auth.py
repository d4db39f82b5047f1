from datetime import timedelta
from types import SimpleNamespace
from urllib.parse import parse_qs, urlencode, urlparse

import pytest

from conftest import INVALID_TOKEN, register
from samevents.api.main import app
from samevents.api.routes.auth import get_oauth_flow_factory
from samevents.database.models import CalendarIntegration, LoginSession, User
from samevents.services.auth_service import hash_password, verify_password
from samevents.services.session_store import SessionStore
from samevents.utils.dates import utcnow


def count_users(db_manager, email):
    with db_manager.get_session() as session:
        return session.query(User).filter(User.email == email).count()


def test_register_logs_the_user_in(client):
    user = register(client)

    assert user['email'] == 'sam@example.com'
    assert 'password' not in user
    assert client.cookies.get('connect.sid')
    assert client.get('/api/auth/user').json()['id'] == user['id']


def test_duplicate_registration_is_rejected_without_new_row(client, db_manager):
    register(client)
    client.cookies.clear()

    response = client.post('/api/auth/register', json={
        'email': 'sam@example.com',
        'password': 'another-secret',
        'confirmPassword': 'another-secret',
    })

    assert response.status_code == 400
    assert 'already exists' in response.json()['message']
    assert count_users(db_manager, 'sam@example.com') == 1


def test_register_rejects_mismatched_passwords(client, db_manager):
    response = client.post('/api/auth/register', json={
        'email': 'new@example.com',
        'password': 'secret123',
        'confirmPassword': 'secret124',
    })

    assert response.status_code == 400
    assert count_users(db_manager, 'new@example.com') == 0


def test_register_rejects_short_password_and_bad_email(client):
    response = client.post('/api/auth/register', json={'email': 'nope', 'password': '123'})
    assert response.status_code == 400


def test_login_and_logout(client):
    register(client)
    client.cookies.clear()

    wrong = client.post('/api/auth/login', json={'email': 'sam@example.com', 'password': 'wrong-password'})
    assert wrong.status_code == 401
    assert wrong.json() == {'message': 'Invalid email or password'}

    unknown = client.post('/api/auth/login', json={'email': 'ghost@example.com', 'password': 'secret123'})
    assert unknown.status_code == 401

    ok = client.post('/api/auth/login', json={'email': 'sam@example.com', 'password': 'secret123'})
    assert ok.status_code == 200
    assert client.get('/api/auth/user').status_code == 200

    assert client.post('/api/auth/logout').json() == {'message': 'Déconnexion réussie'}
    assert client.get('/api/auth/user').status_code == 401


def test_logout_redirect_destroys_session(client, db_manager):
    register(client)
    sid = client.cookies.get('connect.sid')

    response = client.get('/api/logout', follow_redirects=False)

    assert response.status_code == 302
    assert response.headers['location'] == '/'
    with db_manager.get_session() as session:
        assert session.get(LoginSession, sid) is None


def test_google_sign_in_creates_user_and_calendar_integration(client, db_manager):
    response = client.post('/api/auth/google', json={'idToken': 'token:fan@example.com', 'accessToken': 'ya29.token'})

    assert response.status_code == 200
    body = response.json()
    assert body['email'] == 'fan@example.com'
    assert body['firstName'] == 'Sam'
    assert body['lastName'] == 'Hébert'
    assert body['calendarIntegration'] is True

    with db_manager.get_session() as session:
        integration = session.query(CalendarIntegration).one()
        assert integration.provider == 'google'
        assert integration.access_token == 'ya29.token'
        assert integration.expires_at > utcnow()

    # A second sign-in refreshes the token instead of adding an integration
    client.post('/api/auth/google', json={'idToken': 'token:fan@example.com', 'accessToken': 'ya29.other'})
    with db_manager.get_session() as session:
        integration = session.query(CalendarIntegration).one()
        assert integration.access_token == 'ya29.other'
    assert count_users(db_manager, 'fan@example.com') == 1


def test_google_sign_in_rejects_bad_token(client):
    response = client.post('/api/auth/google', json={'idToken': INVALID_TOKEN})
    assert response.status_code == 401


def test_bearer_firebase_token_authenticates_existing_user(client):
    register(client, 'bearer@example.com')
    client.cookies.clear()

    response = client.get('/api/auth/user', headers={'Authorization': 'Bearer token:bearer@example.com'})
    assert response.status_code == 200
    assert response.json()['email'] == 'bearer@example.com'

    response = client.get('/api/auth/user', headers={'Authorization': f'Bearer {INVALID_TOKEN}'})
    assert response.status_code == 401


def test_expired_session_is_ignored_and_purged(session):
    user = User(email='old@example.com', password='')
    session.add(user)
    session.flush()
    store = SessionStore(session, ttl_days=7)
    login = store.create(user.id)

    assert store.get_user_id(login.sid) == user.id

    login.expire = utcnow() - timedelta(seconds=1)
    session.flush()

    assert store.get_user_id(login.sid) is None
    assert session.get(LoginSession, login.sid) is None


def test_session_ttl_is_one_week(session):
    login = SessionStore(session, ttl_days=7).create('someone')
    assert timedelta(days=6, hours=23) < login.expire - utcnow() <= timedelta(days=7)


def test_password_hashing():
    hashed = hash_password('secret123')
    assert hashed != 'secret123'
    assert verify_password('secret123', hashed)
    assert not verify_password('secret124', hashed)
    assert not verify_password('secret123', '')


class FakeOAuthFlow:
    """Stands in for google_auth_oauthlib's Flow on both legs of the consent round trip"""

    def __init__(self):
        self.codes = []
        self.credentials = None

    def authorization_url(self, **kwargs):
        return f"https://accounts.google.com/o/oauth2/auth?{urlencode({'state': kwargs['state']})}", kwargs['state']

    def fetch_token(self, code):
        self.codes.append(code)
        self.credentials = SimpleNamespace(token=f'google-{code}', refresh_token='refresh-token', expiry=None)


@pytest.fixture
def oauth_flow(client):
    flow = FakeOAuthFlow()
    app.dependency_overrides[get_oauth_flow_factory] = lambda: (lambda: flow)
    return flow


def start_google_connect(client):
    response = client.get('/api/auth/google', follow_redirects=False)
    assert response.status_code == 302
    return parse_qs(urlparse(response.headers['location']).query)['state'][0]


def google_callback(client, state, code='auth-code'):
    response = client.get('/api/auth/google/callback', params={'code': code, 'state': state}, follow_redirects=False)
    assert response.status_code == 302
    return response.headers['location']


def test_google_connect_round_trip_stores_integration(client, oauth_flow):
    user = register(client)

    state = start_google_connect(client)

    assert state != user['id']
    assert google_callback(client, state) == '/calendar-integrations?success=google-connected'
    integrations = client.get('/api/calendar/integrations').json()
    assert [(i['provider'], i['isActive']) for i in integrations] == [('google', True)]
    assert oauth_flow.codes == ['auth-code']


def test_google_callback_state_is_single_use(client, oauth_flow):
    register(client)
    state = start_google_connect(client)
    google_callback(client, state)

    assert google_callback(client, state, code='replayed') == '/calendar-integrations?error=oauth-failed'
    assert len(client.get('/api/calendar/integrations').json()) == 1


def test_google_callback_without_session_writes_nothing(client, oauth_flow):
    victim = register(client, 'victim@example.com')
    state = start_google_connect(client)
    client.cookies.clear()

    assert google_callback(client, victim['id'], code='attacker-code') == '/calendar-integrations?error=oauth-failed'
    assert google_callback(client, state, code='attacker-code') == '/calendar-integrations?error=oauth-failed'

    client.post('/api/auth/login', json={'email': 'victim@example.com', 'password': 'secret123'})
    assert client.get('/api/calendar/integrations').json() == []
    assert oauth_flow.codes == []


def test_google_callback_rejects_another_users_state(client, oauth_flow):
    register(client, 'victim@example.com')
    victim_state = start_google_connect(client)

    register(client, 'attacker@example.com')
    assert google_callback(client, victim_state) == '/calendar-integrations?error=oauth-failed'
    assert client.get('/api/calendar/integrations').json() == []

    client.cookies.clear()
    client.post('/api/auth/login', json={'email': 'victim@example.com', 'password': 'secret123'})
    assert client.get('/api/calendar/integrations').json() == []


def test_google_connect_needs_a_login_session(client, oauth_flow):
    register(client, 'bearer@example.com')
    client.cookies.clear()

    response = client.get('/api/auth/google', headers={'Authorization': 'Bearer token:bearer@example.com'},
                          follow_redirects=False)

    assert response.headers['location'] == '/calendar-integrations?error=oauth-init-failed'
