"""Built-in airport and city tables used for autocomplete fallback and code resolution."""

from __future__ import annotations

from typing import Optional

from remvana.modules.travel.models import Airport

AIRPORTS: list[Airport] = [
    Airport(code="ATL", name="Hartsfield-Jackson Atlanta International", city="Atlanta", country="US"),
    Airport(code="BOS", name="Boston Logan International", city="Boston", country="US"),
    Airport(code="DEN", name="Denver International", city="Denver", country="US"),
    Airport(code="DFW", name="Dallas/Fort Worth International", city="Dallas", country="US"),
    Airport(code="JFK", name="John F. Kennedy International", city="New York", country="US"),
    Airport(code="LAS", name="Harry Reid International", city="Las Vegas", country="US"),
    Airport(code="LAX", name="Los Angeles International", city="Los Angeles", country="US"),
    Airport(code="MIA", name="Miami International", city="Miami", country="US"),
    Airport(code="ORD", name="O'Hare International", city="Chicago", country="US"),
    Airport(code="SEA", name="Seattle-Tacoma International", city="Seattle", country="US"),
    Airport(code="SFO", name="San Francisco International", city="San Francisco", country="US"),
    Airport(code="YYZ", name="Toronto Pearson International", city="Toronto", country="CA"),
    Airport(code="MEX", name="Mexico City International", city="Mexico City", country="MX"),
    Airport(code="LHR", name="London Heathrow", city="London", country="GB"),
    Airport(code="CDG", name="Paris Charles de Gaulle", city="Paris", country="FR"),
    Airport(code="AMS", name="Amsterdam Schiphol", city="Amsterdam", country="NL"),
    Airport(code="FRA", name="Frankfurt am Main", city="Frankfurt", country="DE"),
    Airport(code="BER", name="Berlin Brandenburg", city="Berlin", country="DE"),
    Airport(code="MAD", name="Adolfo Suárez Madrid-Barajas", city="Madrid", country="ES"),
    Airport(code="BCN", name="Barcelona-El Prat", city="Barcelona", country="ES"),
    Airport(code="FCO", name="Rome Fiumicino", city="Rome", country="IT"),
    Airport(code="DXB", name="Dubai International", city="Dubai", country="AE"),
    Airport(code="HND", name="Tokyo Haneda", city="Tokyo", country="JP"),
    Airport(code="SIN", name="Singapore Changi", city="Singapore", country="SG"),
    Airport(code="SYD", name="Sydney Kingsford Smith", city="Sydney", country="AU"),
]

CITY_COORDINATES: dict[str, tuple[float, float]] = {
    "san francisco": (37.7749, -122.4194),
    "new york": (40.7128, -74.0060),
    "los angeles": (34.0522, -118.2437),
    "chicago": (41.8781, -87.6298),
    "miami": (25.7617, -80.1918),
    "london": (51.5074, -0.1278),
    "paris": (48.8566, 2.3522),
    "amsterdam": (52.3676, 4.9041),
    "tokyo": (35.6762, 139.6503),
    "berlin": (52.5200, 13.4050),
    "madrid": (40.4168, -3.7038),
    "barcelona": (41.3874, 2.1686),
    "rome": (41.9028, 12.4964),
    "dubai": (25.2048, 55.2708),
    "singapore": (1.3521, 103.8198),
    "sydney": (-33.8688, 151.2093),
}


def search_airports(query: str, limit: int = 10) -> list[Airport]:
    """Match airports by code prefix, city or name."""
    q = query.strip().lower()
    if not q:
        return []
    matches = [
        a for a in AIRPORTS
        if a.code.lower().startswith(q) or q in a.city.lower() or q in a.name.lower()
    ]
    return matches[:limit]


def resolve_airport_code(value: str) -> Optional[str]:
    """Turn a city name or IATA code into an airport code, or None."""
    v = value.strip()
    if not v:
        return None
    # "Chicago, IL" and "Paris, France" style inputs
    city = v.split(",")[0].strip().lower()
    for airport in AIRPORTS:
        if airport.code.lower() == v.lower() or airport.city.lower() == city:
            return airport.code
    return None


def city_coordinates(destination: str) -> Optional[tuple[float, float]]:
    return CITY_COORDINATES.get(destination.split(",")[0].strip().lower())
