"""
Distances between a user's ZIP code and trial sites.

Postal codes are geocoded with Nominatim (OpenStreetMap). Lookups are cached
for the life of the geocoder and rate limited to the public server's one
request per second.
"""

from typing import Dict, Optional, Tuple

from geopy.distance import geodesic
from geopy.exc import GeopyError
from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import Nominatim

from ingestion.constants import DEFAULT_COUNTRY, GEOCODER_USER_AGENT
from util.logging_util import setup_logger

logger = setup_logger(__name__)

Point = Tuple[float, float]


class ZipGeocoder:
    """Turns postal codes into (latitude, longitude) points."""

    def __init__(self, user_agent: str = GEOCODER_USER_AGENT, timeout: float = 5.0,
                 min_delay_seconds: float = 1.0, max_retries: int = 2):
        self.nominatim = Nominatim(user_agent=user_agent, timeout=timeout)
        self._geocode = RateLimiter(
            self.nominatim.geocode,
            min_delay_seconds=min_delay_seconds,
            max_retries=max_retries,
            swallow_exceptions=False,
        )
        self.location_cache: Dict[Tuple[str, str], Optional[Point]] = {}

    def locate(self, postal_code: Optional[str], country: Optional[str] = DEFAULT_COUNTRY) -> Optional[Point]:
        """
        Geocode a postal code.

        Returns:
            The point, or None when the code is empty, unknown to Nominatim,
            or the lookup failed.
        """
        code = str(postal_code or "").strip()
        if not code:
            return None
        key = (code, country or "")
        if key in self.location_cache:
            return self.location_cache[key]

        query = {"postalcode": code}
        if country:
            query["country"] = country
        try:
            location = self._geocode(query, exactly_one=True)
        except GeopyError as e:
            # Not cached, a later run may succeed
            logger.warning(f"Geocoding failed for postal code {code} ({country}): {e}")
            return None

        point = (location.latitude, location.longitude) if location else None
        if point is None:
            logger.debug(f"No geocoding result for postal code {code} ({country})")
        self.location_cache[key] = point
        return point


def site_point(location: dict, geocoder: Optional[ZipGeocoder] = None) -> Optional[Point]:
    """
    The coordinates of a trial site.

    Registry coordinates (geoPoint) are used when present, otherwise the
    site's postal code is geocoded.
    """
    geo_point = location.get("geoPoint")
    if isinstance(geo_point, dict) and geo_point.get("lat") is not None and geo_point.get("lon") is not None:
        return float(geo_point["lat"]), float(geo_point["lon"])

    postal_code = location.get("zip") or location.get("postal_code")
    if postal_code and geocoder is not None:
        return geocoder.locate(postal_code, location.get("country") or DEFAULT_COUNTRY)
    return None


def within_radius(origin: Point, point: Point, radius_miles: float) -> bool:
    return geodesic(origin, point).miles <= radius_miles
