from typing import Any, Callable, Dict, Optional
import logging

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from samevents.config.manager import config_manager
from samevents.database.connection import get_db
from samevents.database.models import User
from samevents.services.auth_service import AuthService, verify_firebase_id_token
from samevents.services.event_storage import EventStorage
from samevents.services.session_store import SessionStore

logger = logging.getLogger(__name__)


def session_cookie_name() -> str:
    return config_manager.get('app.session_cookie', 'connect.sid')


def get_storage(db: Session = Depends(get_db)) -> EventStorage:
    return EventStorage(db)


def get_session_store(db: Session = Depends(get_db)) -> SessionStore:
    return SessionStore(db)


def get_token_verifier() -> Callable[[str], Dict[str, Any]]:
    return verify_firebase_id_token


def get_auth_service(storage: EventStorage = Depends(get_storage),
                     token_verifier=Depends(get_token_verifier)) -> AuthService:
    return AuthService(storage, token_verifier)


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get('authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):]
    return None


async def get_current_user(request: Request,
                           db: Session = Depends(get_db),
                           sessions: SessionStore = Depends(get_session_store),
                           auth: AuthService = Depends(get_auth_service)) -> User:
    """Resolve the caller from the session cookie, then from a Firebase bearer token"""
    user_id = sessions.get_user_id(request.cookies.get(session_cookie_name()))
    user = auth.storage.get_user(user_id) if user_id else None

    if user is None:
        token = _bearer_token(request)
        if token:
            user = auth.user_from_token(token)

    # Purged expired sessions are committed even on a 401
    db.commit()

    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
