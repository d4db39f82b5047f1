from datetime import timedelta
from typing import Optional
import logging
import secrets

from sqlalchemy.orm import Session

from samevents.config.manager import config_manager
from samevents.database.models import LoginSession
from samevents.utils.dates import utcnow

logger = logging.getLogger(__name__)


class SessionStore:
    """Server-side login sessions kept in the ``sessions`` table.

    The cookie only carries the random ``sid``. Sessions live for a fixed
    TTL and are never rotated.
    """

    def __init__(self, session: Session, ttl_days: Optional[int] = None):
        self.session = session
        self.ttl = timedelta(days=ttl_days or config_manager.get('app.session_ttl_days', 7))

    def create(self, user_id: str) -> LoginSession:
        login = LoginSession(
            sid=secrets.token_urlsafe(32),
            sess={'userId': user_id},
            expire=utcnow() + self.ttl,
        )
        self.session.add(login)
        self.session.flush()
        logger.debug(f"Opened session for user {user_id}")
        return login

    def _live(self, sid: Optional[str]) -> Optional[LoginSession]:
        if not sid:
            return None
        login = self.session.get(LoginSession, sid)
        if login is None:
            return None
        if login.expire <= utcnow():
            self.session.delete(login)
            self.session.flush()
            return None
        return login

    def get_user_id(self, sid: Optional[str]) -> Optional[str]:
        """Resolve a cookie value to a user id; expired sessions are purged."""
        login = self._live(sid)
        if login is None:
            return None
        return (login.sess or {}).get('userId')

    def issue_oauth_state(self, sid: Optional[str]) -> Optional[str]:
        """Store a fresh OAuth ``state`` nonce in the session and return it"""
        login = self._live(sid)
        if login is None:
            return None
        state = secrets.token_urlsafe(24)
        # Reassigned so the JSON column is seen as changed
        login.sess = {**(login.sess or {}), 'oauthState': state}
        self.session.flush()
        return state

    def consume_oauth_state(self, sid: Optional[str], state: Optional[str]) -> Optional[str]:
        """Return the session's user id when ``state`` matches its nonce.

        The nonce is single use and is cleared whether or not it matched.
        """
        login = self._live(sid)
        if login is None or not state:
            return None
        sess = dict(login.sess or {})
        expected = sess.pop('oauthState', None)
        login.sess = sess
        self.session.flush()
        if not expected or not secrets.compare_digest(expected, state):
            return None
        return sess.get('userId')

    def destroy(self, sid: Optional[str]):
        if not sid:
            return
        login = self.session.get(LoginSession, sid)
        if login is not None:
            self.session.delete(login)
            self.session.flush()
