"""Venue lookups for the event form: Facebook pages, Google Places suggestions
and venue links.

Every lookup degrades to a built-in list of Québec venues when no API key is
configured, so the form stays usable offline.
"""
from typing import Any, Dict, List, Optional
import logging
import re
import unicodedata
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

GRAPH_SEARCH_URL = 'https://graph.facebook.com/v18.0/search'
PLACES_AUTOCOMPLETE_URL = 'https://maps.googleapis.com/maps/api/place/autocomplete/json'
PLACES_TEXT_SEARCH_URL = 'https://maps.googleapis.com/maps/api/place/textsearch/json'
PLACES_DETAILS_URL = 'https://maps.googleapis.com/maps/api/place/details/json'

# (facebook id, name, city, category, type, description)
KNOWN_VENUES = [
    ('bordelcomedie', 'Le Bordel Comédie Club', 'Montréal, QC', 'Club de comédie', 'page', None),
    ('lebordel', 'Le Bordel', 'Montréal, QC', 'Bar', 'page', None),
    ('lefoutoir', 'Le Foutoir', 'Montréal, QC', 'Bar/Restaurant', 'page', None),
    ('comedynesttwo', 'Comedy Nest', 'Montréal, QC', 'Club de comédie', 'page', None),
    ('comedyworksmontreal', 'Comedy Works', 'Montréal, QC', 'Club de comédie', 'page', None),
    ('barleraymond', 'Bar Le Raymond', 'Montréal, QC', 'Bar', 'page', None),
    ('saintbock', 'Saint-Bock', 'Montréal, QC', 'Brasserie', 'page', None),
    ('lereservoir', 'Le Réservoir', 'Montréal, QC', 'Brasserie', 'page', None),
    ('ledieuducielmontreal', 'Le Dieu du Ciel', 'Montréal, QC', 'Brasserie', 'page', None),
    ('unibroue', 'Unibroue', 'Chambly, QC', 'Brasserie', 'page', None),
    ('brutopia', 'Brutopia', 'Montréal, QC', 'Brasserie', 'page', None),
    ('pubquartierlatinmtl', 'Pub Quartier Latin', 'Montréal, QC', 'Pub', 'page', None),
    ('chezserge', 'Chez Serge', 'Montréal, QC', 'Restaurant', 'page', None),
    ('bistrolemythos', 'Bistro Le Mythos', 'Montréal, QC', 'Restaurant', 'page', None),
    ('pubstpatrick', 'Pub St-Patrick', 'Montréal, QC', 'Pub', 'page', None),
    ('loupgaron', 'Loup Garou', 'Québec, QC', 'Bar', 'page', None),
    ('chezmaurice', 'Chez Maurice', 'Québec, QC', 'Restaurant', 'page', None),
    ('korrigannpub', 'Korrigann Pub', 'Québec, QC', 'Pub', 'page', None),
    ('pubdufaubourg', 'Pub du Faubourg', 'Québec, QC', 'Pub', 'page', None),
    ('sacrecoeurpub', 'Sacré-Coeur Pub', 'Québec, QC', 'Pub', 'page', None),
    ('theatregranby', 'Théâtre Palace Granby', 'Granby, QC', 'Théâtre', 'page', None),
    ('centreculturelgranby', 'Centre culturel France Arbour', 'Granby, QC', 'Centre culturel', 'page', None),
    ('casinogranby', 'Casino de Granby', 'Granby, QC', 'Casino', 'page', None),
    ('pubgranby', 'Pub Granby', 'Granby, QC', 'Pub', 'page', None),
    ('sallegranby', 'Salle de spectacle Granby', 'Granby, QC', 'Salle de spectacle', 'page', None),
    ('event-stand-up-bordel', 'Soirée Stand-up au Bordel', 'Montréal, QC', 'Spectacle', 'event',
     'Soirée de stand-up avec des humoristes locaux'),
    ('event-comedy-night', 'Comedy Night Montréal', 'Montréal, QC', 'Comédie', 'event',
     'Nuit de la comédie avec plusieurs artistes'),
    ('event-open-mic', 'Open Mic Comedy', 'Montréal, QC', 'Open Mic', 'event',
     'Micro ouvert pour humoristes débutants'),
    ('event-soiree-rire-granby', 'La soirée du rire de Granby', 'Granby, QC', "Spectacle d'humour", 'event',
     'Soirée humoristique à Granby avec des artistes locaux'),
    ('event-granby-comedy', 'Granby Comedy Show', 'Granby, QC', 'Comédie', 'event',
     'Spectacle de comédie à Granby'),
]

KNOWN_PLACES = [
    'Le Bordel Comédie Club - Montréal, QC, Canada',
    'Théâtre Corona - Montréal, QC, Canada',
    'Le 164 - Saint-Jean-sur-Richelieu, QC, Canada',
    'La Taverne Vieux-Chambly - Chambly, QC, Canada',
    'Centre Bell - Montréal, QC, Canada',
    'Théâtre St-Denis - Montréal, QC, Canada',
    'Salle André-Mathieu - Laval, QC, Canada',
    'Théâtre du Capitole - Québec, QC, Canada',
    "L'Astral - Montréal, QC, Canada",
    'Bar Le Ritz PDB - Montréal, QC, Canada',
]

SUGGESTED_CITIES = [
    'Montréal', 'Québec', 'Laval', 'Gatineau', 'Longueuil', 'Sherbrooke',
    'Trois-Rivières', 'Saint-Jean-sur-Richelieu', 'Chambly', 'Granby',
]


def normalize_text(text: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize('NFKD', text.lower())
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    stripped = re.sub(r'[^a-z0-9\s]', '', stripped)
    return re.sub(r'\s+', ' ', stripped).strip()


def score_venue(query: str, venue_id: str, name: str) -> int:
    normalized_query = normalize_text(query)
    normalized_name = normalize_text(name)
    query_words = [w for w in normalized_query.split(' ') if len(w) > 1]
    name_words = [w for w in normalized_name.split(' ') if len(w) > 1]

    score = 0
    if normalized_query and normalized_query in normalized_name:
        score += 100

    matched = 0
    for query_word in query_words:
        for name_word in name_words:
            if name_word in query_word or query_word in name_word:
                matched += 1
                score += 20
            if len(name_word) > 3 and len(query_word) > 3:
                common = min(len(name_word), len(query_word))
                if query_word[:common] == name_word[:common]:
                    score += 10

    # Only a bonus once something actually matched
    if score and matched >= len(query_words) * 0.7:
        score += 30

    compact_query = normalized_query.replace(' ', '')
    if compact_query and compact_query in venue_id:
        score += 50

    return score


def search_known_venues(query: str, search_type: str = 'page', limit: int = 10) -> List[Dict[str, Any]]:
    """Rank the built-in venue list against ``query``"""
    scored = []
    for venue_id, name, city, category, kind, description in KNOWN_VENUES:
        if search_type in ('page', 'event') and kind != search_type:
            continue
        score = score_venue(query, venue_id, name)
        if score > 0:
            scored.append((score, venue_id, name, city, category, kind, description))

    scored.sort(key=lambda item: item[0], reverse=True)

    results = []
    for score, venue_id, name, city, category, kind, description in scored[:limit]:
        results.append({
            'id': venue_id,
            'name': name,
            'url': f'https://www.facebook.com/events/{venue_id}' if kind == 'event' else f'https://www.facebook.com/{venue_id}',
            'type': kind,
            'profilePicture': f'https://graph.facebook.com/{venue_id}/picture?type=large' if kind == 'page' else None,
            'description': description,
            'location': city,
            'category': category,
            'verified': True,
        })
    return results


def search_facebook(query: str, search_type: str = 'page', access_token: Optional[str] = None,
                    timeout: float = 10) -> List[Dict[str, Any]]:
    if not query or len(query) < 2:
        return []

    if access_token:
        api_type = 'event' if search_type == 'event' else 'page'
        fields = ('id,name,description,place,start_time,cover' if api_type == 'event'
                  else 'id,name,category,location,picture,verification_status,website')
        try:
            response = requests.get(GRAPH_SEARCH_URL, params={
                'q': query,
                'type': api_type,
                'fields': fields,
                'access_token': access_token,
                'limit': 10,
            }, timeout=timeout)
            response.raise_for_status()
            return [_graph_item(item, api_type) for item in response.json().get('data', [])]
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Facebook API error, using known venues: {e}")

    return search_known_venues(query, search_type)


def _graph_item(item: Dict[str, Any], api_type: str) -> Dict[str, Any]:
    picture = ((item.get('picture') or {}).get('data') or {}).get('url')
    location = item.get('location') or ((item.get('place') or {}).get('location')) or {}
    return {
        'id': item['id'],
        'name': item.get('name'),
        'url': f"https://facebook.com/{item['id']}",
        'profilePicture': picture or f"https://graph.facebook.com/{item['id']}/picture?type=large",
        'verified': item.get('verification_status') in ('blue_verified', 'gray_verified'),
        'address': location.get('street', ''),
        'category': item.get('category') or 'Événement',
        'description': item.get('description') or '',
        'type': api_type,
        'isSaved': False,
    }


def fallback_predictions(text: str, limit: int = 5) -> List[Dict[str, Any]]:
    candidates = KNOWN_PLACES + [f'{text} - {city}, QC, Canada' for city in SUGGESTED_CITIES]
    matches = [c for c in candidates if text.lower() in c.lower()][:limit]
    predictions = []
    for index, description in enumerate(matches):
        main_text, _, secondary = description.partition(' - ')
        predictions.append({
            'description': description,
            'place_id': f'fallback_{index}',
            'structured_formatting': {
                'main_text': main_text,
                'secondary_text': secondary or 'Québec, Canada',
            },
        })
    return predictions


def autocomplete_places(text: str, api_key: Optional[str] = None, timeout: float = 10) -> Dict[str, Any]:
    if not api_key:
        return {'predictions': fallback_predictions(text), 'status': 'FALLBACK_OK'}

    response = requests.get(PLACES_AUTOCOMPLETE_URL, params={
        'input': text,
        'key': api_key,
        'language': 'fr',
        'components': 'country:ca',
        'types': 'establishment|geocode',
        'location': '45.5017,-73.5673',  # Montréal
        'radius': '100000',
        'strictbounds': 'false',
    }, timeout=timeout)
    data = response.json()

    if data.get('status') == 'OK':
        return {'predictions': data.get('predictions', [])}
    logger.warning(f"Google Places API error: {data.get('status')}")
    if data.get('status') == 'REQUEST_DENIED':
        return {
            'predictions': fallback_predictions(text),
            'status': 'FALLBACK_USED',
            'info_message': 'API key has restrictions - using Quebec venues fallback',
        }
    return {'predictions': []}


def venue_details(venue_name: str, address: Optional[str] = None, api_key: Optional[str] = None,
                  timeout: float = 10) -> Dict[str, Any]:
    """Find website, Facebook and Maps links for a venue via Places"""
    if not api_key:
        return {
            'facebookUrl': None,
            'websiteUrl': None,
            'message': 'API key not available - manual entry required',
        }

    search_query = f'{venue_name} {address}' if address else venue_name
    search = requests.get(PLACES_TEXT_SEARCH_URL, params={
        'query': search_query,
        'key': api_key,
        'language': 'fr',
        'region': 'ca',
    }, timeout=timeout).json()

    if search.get('status') != 'OK' or not search.get('results'):
        return {'facebookUrl': None, 'websiteUrl': None, 'message': 'Venue not found in Google Places'}

    place = search['results'][0]
    details = requests.get(PLACES_DETAILS_URL, params={
        'place_id': place['place_id'],
        'key': api_key,
        'fields': 'website,url,name,formatted_address,business_status,types',
    }, timeout=timeout).json()

    if details.get('status') != 'OK':
        return {'facebookUrl': None, 'websiteUrl': None, 'message': 'Could not fetch venue details'}

    result = details.get('result') or {}
    website_url = result.get('website')
    facebook_url = None
    if website_url and 'facebook.com' in website_url:
        facebook_url, website_url = website_url, None

    if not facebook_url and not website_url:
        clean_name = re.sub(r'[^\w\s]', '', venue_name).strip()
        facebook_url = f'https://www.facebook.com/search/top?q={quote(clean_name)}'

    return {
        'facebookUrl': facebook_url,
        'websiteUrl': website_url,
        'googleMapsUrl': result.get('url'),
        'placeName': place.get('name') or venue_name,
    }
