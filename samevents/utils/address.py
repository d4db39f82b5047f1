"""Helpers for pulling venue name and city out of a free-form Québec address.

Addresses look like ``La Taverne de Chambly, 1737 Av. Bourgogne, Chambly, QC J3L 1Y8``.
"""

KNOWN_CITIES = [
    'Chambly', 'Montréal', 'Québec', 'Laval', 'Gatineau', 'Longueuil',
    'Sherbrooke', 'Saguenay', 'Lévis', 'Trois-Rivières', 'Terrebonne',
    'Saint-Jean-sur-Richelieu', 'Granby', 'Drummondville', 'Saint-Jérôme',
    'Chicoutimi', 'Saint-Hyacinthe', 'Shawinigan', 'Dollard-des-Ormeaux',
    'Blainville',
]


def extract_city_from_address(address: str) -> str:
    if not address:
        return ''

    parts = [part.strip() for part in address.split(',')]

    # Name, Street, City, Province Postal
    if len(parts) >= 3:
        return parts[-2]

    lowered = address.lower()
    for city in KNOWN_CITIES:
        if city.lower() in lowered:
            return city

    return ''


def extract_venue_name_from_address(address: str) -> str:
    if not address:
        return ''
    return address.split(',')[0].strip()
