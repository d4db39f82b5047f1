from datetime import timedelta
from typing import Any, Callable, Dict, Optional
import logging

import bcrypt
import google.auth.transport.requests
from google.oauth2 import id_token

from samevents.config.manager import config_manager
from samevents.database.models import User
from samevents.services.event_storage import EventStorage
from samevents.utils.dates import utcnow

logger = logging.getLogger(__name__)

# Lifetime Google gives the access token handed over at sign-in
GOOGLE_ACCESS_TOKEN_TTL = timedelta(hours=1)


class AuthError(Exception):
    """Authentication or registration refused; carries the HTTP status to answer with."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        # Google-only accounts have no password
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        logger.warning("Stored password hash is not a bcrypt hash")
        return False


def verify_firebase_id_token(token: str) -> Dict[str, Any]:
    """Verify a Firebase ID token and return its claims. Raises ValueError."""
    project_id = config_manager.get('firebase.project_id')
    if not project_id:
        raise ValueError("Firebase project ID is not configured")
    request = google.auth.transport.requests.Request()
    claims = id_token.verify_firebase_token(token, request, audience=project_id)
    if not claims:
        raise ValueError("Invalid Firebase ID token")
    return claims


class AuthService:
    def __init__(self, storage: EventStorage,
                 token_verifier: Callable[[str], Dict[str, Any]] = verify_firebase_id_token):
        self.storage = storage
        self.token_verifier = token_verifier

    def register(self, email: str, password: str, first_name: Optional[str] = None,
                 last_name: Optional[str] = None, profile_image_url: Optional[str] = None) -> User:
        if self.storage.get_user_by_email(email):
            raise AuthError("User with this email already exists", status_code=400)
        return self.storage.create_user(
            email=email,
            password=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            profile_image_url=profile_image_url,
        )

    def authenticate(self, email: str, password: str) -> User:
        user = self.storage.get_user_by_email(email)
        if not user or not verify_password(password, user.password):
            logger.info(f"Failed login attempt for {email}")
            raise AuthError("Invalid email or password", status_code=401)
        return user

    def user_from_token(self, token: str) -> Optional[User]:
        """Resolve a bearer Firebase token to an existing user, or None"""
        try:
            claims = self.token_verifier(token)
        except Exception as e:
            logger.error(f"Firebase token verification error: {str(e)}")
            return None
        email = claims.get('email')
        if not email:
            return None
        return self.storage.get_user_by_email(email)

    def google_sign_in(self, token: str, access_token: Optional[str] = None) -> User:
        """Sign in with a Firebase ID token, creating the user on first visit.

        When an OAuth ``access_token`` comes along, the user's Google
        calendar integration is created or refreshed with it.
        """
        try:
            claims = self.token_verifier(token)
        except Exception as e:
            logger.error(f"Google auth error: {str(e)}")
            raise AuthError("Token Google invalide", status_code=401)

        email = claims.get('email')
        if not email:
            raise AuthError("Email requis depuis Google", status_code=400)

        picture = claims.get('picture')
        user = self.storage.get_user_by_email(email)
        if user is None:
            name_parts = (claims.get('name') or email.split('@')[0]).split(' ')
            user = self.storage.create_user(
                email=email,
                first_name=name_parts[0] or '',
                last_name=' '.join(name_parts[1:]),
                profile_image_url=picture,
            )
        elif picture and user.profile_image_url != picture:
            self.storage.update_user(user.id, {'profile_image_url': picture})

        if access_token:
            self._store_google_token(user, access_token)

        return user

    def _store_google_token(self, user: User, access_token: str):
        expires_at = utcnow() + GOOGLE_ACCESS_TOKEN_TTL
        existing = self.storage.get_active_calendar_integration(user.id, 'google')
        if existing:
            self.storage.update_calendar_integration(existing.id, user.id, {
                'access_token': access_token,
                'is_active': True,
                'expires_at': expires_at,
            })
            logger.info(f"Updated Google Calendar integration for {user.email}")
        else:
            self.storage.create_calendar_integration(user.id, {
                'provider': 'google',
                'access_token': access_token,
                'refresh_token': None,
                'expires_at': expires_at,
                'calendar_id': 'primary',
                'is_active': True,
            })
            logger.info(f"Created Google Calendar integration for {user.email}")
