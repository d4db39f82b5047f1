from datetime import timezone
from typing import Callable, Optional
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from google_auth_oauthlib.flow import Flow
from sqlalchemy.orm import Session

from samevents.api.dependencies import (
    get_auth_service, get_current_user, get_session_store, get_storage, session_cookie_name,
)
from samevents.config.manager import config_manager
from samevents.database.connection import get_db
from samevents.database.models import User
from samevents.integrations.google_calendar import SCOPES, TOKEN_URI
from samevents.models.schemas import GoogleSignInRequest, LoginRequest, RegisterRequest
from samevents.services.auth_service import AuthError, AuthService
from samevents.services.event_storage import EventStorage
from samevents.services.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

INTEGRATIONS_PAGE = '/calendar-integrations'


def _login_response(user: User, login_sid: str, status_code: int = 200, **extra) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content={**user.to_dict(), **extra})
    response.set_cookie(
        session_cookie_name(),
        login_sid,
        max_age=int(config_manager.get('app.session_ttl_days', 7)) * 24 * 3600,
        httponly=True,
        secure=config_manager.get('app.secure_cookies', False),
        samesite='lax',
    )
    return response


def _auth_error(error: AuthError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"message": error.message})


@router.post("/api/auth/register")
async def register(payload: RegisterRequest,
                   db: Session = Depends(get_db),
                   auth: AuthService = Depends(get_auth_service),
                   sessions: SessionStore = Depends(get_session_store)):
    try:
        user = auth.register(
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            profile_image_url=payload.profile_image_url,
        )
    except AuthError as e:
        return _auth_error(e)

    login = sessions.create(user.id)
    db.commit()
    logger.info(f"Registered user {user.email}")
    return _login_response(user, login.sid, status_code=201)


@router.post("/api/auth/login")
async def login(payload: LoginRequest,
                db: Session = Depends(get_db),
                auth: AuthService = Depends(get_auth_service),
                sessions: SessionStore = Depends(get_session_store)):
    try:
        user = auth.authenticate(payload.email, payload.password)
    except AuthError as e:
        return _auth_error(e)

    login = sessions.create(user.id)
    db.commit()
    return _login_response(user, login.sid)


@router.post("/api/auth/google")
async def google_sign_in(payload: GoogleSignInRequest,
                         db: Session = Depends(get_db),
                         auth: AuthService = Depends(get_auth_service),
                         sessions: SessionStore = Depends(get_session_store)):
    """Sign in with a Firebase ID token from the Google popup"""
    try:
        user = auth.google_sign_in(payload.id_token, payload.access_token)
    except AuthError as e:
        return _auth_error(e)

    login = sessions.create(user.id)
    db.commit()
    return _login_response(user, login.sid, calendarIntegration=bool(payload.access_token))


def _logout(request: Request, db: Session, sessions: SessionStore, response: Response) -> Response:
    sessions.destroy(request.cookies.get(session_cookie_name()))
    db.commit()
    response.delete_cookie(session_cookie_name())
    return response


@router.post("/api/auth/logout")
async def logout(request: Request,
                 db: Session = Depends(get_db),
                 sessions: SessionStore = Depends(get_session_store)):
    return _logout(request, db, sessions, JSONResponse({"message": "Déconnexion réussie"}))


@router.get("/api/logout")
async def logout_redirect(request: Request,
                          db: Session = Depends(get_db),
                          sessions: SessionStore = Depends(get_session_store)):
    return _logout(request, db, sessions, RedirectResponse("/", status_code=302))


@router.get("/api/auth/user")
async def current_user(user: User = Depends(get_current_user)):
    return user.to_dict()


def build_oauth_flow() -> Flow:
    """OAuth client for connecting a Google calendar"""
    client_id = config_manager.get('google.client_id')
    client_secret = config_manager.get('google.client_secret')
    if not client_id or not client_secret:
        raise ValueError("Google OAuth client is not configured")

    redirect_uri = config_manager.get('google.redirect_uri')
    client_config = {
        'web': {
            'client_id': client_id,
            'client_secret': client_secret,
            'auth_uri': 'https://accounts.google.com/o/oauth2/auth',
            'token_uri': TOKEN_URI,
            'redirect_uris': [redirect_uri],
        }
    }
    # The callback runs on a fresh Flow, so no PKCE verifier survives between requests
    return Flow.from_client_config(
        client_config,
        scopes=SCOPES,
        redirect_uri=redirect_uri,
        autogenerate_code_verifier=False,
    )


def get_oauth_flow_factory() -> Callable[[], Flow]:
    return build_oauth_flow


@router.get("/api/auth/google")
async def google_connect(request: Request,
                         user: User = Depends(get_current_user),
                         db: Session = Depends(get_db),
                         sessions: SessionStore = Depends(get_session_store),
                         flow_factory: Callable[[], Flow] = Depends(get_oauth_flow_factory)):
    """Send the user to Google's consent screen to connect their calendar.

    ``state`` is a single-use nonce kept in the login session, so the
    callback only ever writes to the account of the browser that started it.
    """
    state = sessions.issue_oauth_state(request.cookies.get(session_cookie_name()))
    if state is None:
        logger.warning(f"Google OAuth requested by user {user.id} without a login session")
        return RedirectResponse(f"{INTEGRATIONS_PAGE}?error=oauth-init-failed", status_code=302)
    db.commit()

    try:
        flow = flow_factory()
        url, _ = flow.authorization_url(
            access_type='offline',
            prompt='consent',
            include_granted_scopes='true',
            state=state,
        )
    except Exception as e:
        logger.error(f"Error starting Google OAuth: {str(e)}")
        return RedirectResponse(f"{INTEGRATIONS_PAGE}?error=oauth-init-failed", status_code=302)

    logger.info(f"Redirecting user {user.id} to Google OAuth")
    return RedirectResponse(url, status_code=302, headers={'Cache-Control': 'no-cache, no-store, must-revalidate'})


@router.get("/api/auth/google/callback")
async def google_callback(request: Request,
                          code: Optional[str] = None,
                          state: Optional[str] = None,
                          error: Optional[str] = None,
                          db: Session = Depends(get_db),
                          storage: EventStorage = Depends(get_storage),
                          sessions: SessionStore = Depends(get_session_store),
                          flow_factory: Callable[[], Flow] = Depends(get_oauth_flow_factory)):
    def back(query: str) -> RedirectResponse:
        return RedirectResponse(f"{INTEGRATIONS_PAGE}?{query}", status_code=302)

    if error:
        logger.error(f"Google OAuth error: {error}")
        return back("error=oauth-denied")
    if not code:
        return back("error=no-code")
    if not state:
        return back("error=no-user-id")

    # The consent round trip must come back to the browser that started it
    user_id = sessions.consume_oauth_state(request.cookies.get(session_cookie_name()), state)
    db.commit()
    if not user_id:
        logger.warning("Google OAuth callback without a matching login session")
        return back("error=oauth-failed")
    if not storage.get_user(user_id):
        return back("error=no-user-id")

    try:
        flow = flow_factory()
        flow.fetch_token(code=code)
        credentials = flow.credentials
    except Exception as e:
        logger.error(f"Google OAuth callback error: {str(e)}")
        return back("error=oauth-failed")

    expires_at = credentials.expiry
    if expires_at is not None and expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)

    integration = storage.create_calendar_integration(user_id, {
        'provider': 'google',
        'access_token': credentials.token,
        'refresh_token': credentials.refresh_token,
        'expires_at': expires_at,
        'calendar_id': config_manager.get('google.calendar_id', 'primary'),
        'is_active': True,
    })
    db.commit()
    logger.info(f"Calendar integration created: {integration.id}")
    return back("success=google-connected")
