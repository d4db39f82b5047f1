import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from samevents.api.dependencies import get_current_user, get_storage
from samevents.config.manager import config_manager
from samevents.database.connection import get_db
from samevents.database.models import User
from samevents.models.schemas import SavedVenueCreate
from samevents.services import venue_search
from samevents.services.event_storage import EventStorage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["venues"])


def _timeout() -> float:
    return config_manager.get('app.http_timeout', 10)


@router.get("/api/facebook/search")
async def facebook_search(q: str = '', type: str = 'page'):
    """Facebook pages or events matching ``q``, ``type`` is page, event or all"""
    results = venue_search.search_facebook(
        q, type, access_token=config_manager.get('facebook.access_token'), timeout=_timeout()
    )
    return {'data': results}


@router.get("/api/places/autocomplete")
async def places_autocomplete(input: Optional[str] = None):
    if not input:
        raise HTTPException(status_code=400, detail="Input parameter is required")
    return venue_search.autocomplete_places(input, config_manager.get('places.api_key'), timeout=_timeout())


@router.get("/api/places/venue-details")
async def place_venue_details(venueName: Optional[str] = None, address: Optional[str] = None):
    if not venueName:
        raise HTTPException(status_code=400, detail="venueName parameter is required")
    return venue_search.venue_details(venueName, address, config_manager.get('places.api_key'), timeout=_timeout())


@router.get("/api/venues/saved")
async def saved_venues(user: User = Depends(get_current_user),
                       storage: EventStorage = Depends(get_storage)):
    return {'venues': [venue.to_dict() for venue in storage.get_saved_venues(user.id)]}


@router.post("/api/venues/save")
async def save_venue(payload: SavedVenueCreate,
                     user: User = Depends(get_current_user),
                     db: Session = Depends(get_db),
                     storage: EventStorage = Depends(get_storage)):
    venue, created = storage.save_venue(user.id, payload.model_dump())
    db.commit()
    return {
        'venue': venue.to_dict(),
        'message': 'Venue saved successfully' if created else 'Venue usage updated',
    }
