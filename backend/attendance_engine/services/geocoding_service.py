# File: backend/attendance_engine/services/geocoding_service.py
"""Best-effort reverse geocoding against OpenStreetMap Nominatim."""
import logging
from collections import OrderedDict
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

NOMINATIM_REVERSE_URL = 'https://nominatim.openstreetmap.org/reverse'
MIN_COMPOSED_LENGTH = 20
DEFAULT_CACHE_SIZE = 1024


class NominatimGeocoder:
    """Resolve coordinates to a human-readable Vietnamese address."""

    def __init__(self, url: str = NOMINATIM_REVERSE_URL, timeout: float = 5,
                 user_agent: str = 'AttendanceEngine/1.0', session: Optional[requests.Session] = None,
                 cache_size: int = DEFAULT_CACHE_SIZE):
        self.url = url
        self.timeout = timeout
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self.cache_size = cache_size
        # least recently used first
        self.cache: "OrderedDict[str, str]" = OrderedDict()

    def resolve_address(self, lat: float, lng: float) -> Optional[str]:
        """Address for the coordinates, or None on any failure."""
        cache_key = f"{lat:.6f},{lng:.6f}"
        if cache_key in self.cache:
            self.cache.move_to_end(cache_key)
            return self.cache[cache_key]

        try:
            response = self.session.get(
                self.url,
                params={
                    'format': 'json',
                    'lat': lat,
                    'lon': lng,
                    'zoom': 18,
                    'addressdetails': 1
                },
                headers={'User-Agent': self.user_agent},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Reverse geocoding failed for %s: %s", cache_key, e)
            return None

        address = self.compose_address(data)
        if address and self.cache_size > 0:
            self.cache[cache_key] = address
            while len(self.cache) > self.cache_size:
                self.cache.popitem(last=False)
        return address

    @staticmethod
    def compose_address(data: Any) -> Optional[str]:
        """Build "Số N, road, ward, district, city" from Nominatim addressdetails."""
        if not isinstance(data, dict):
            return None
        display_name = data.get('display_name') or None
        details = data.get('address')
        if not isinstance(details, dict):
            return display_name

        def first(*keys):
            for key in keys:
                if details.get(key):
                    return details[key]
            return None

        parts = []
        if details.get('house_number'):
            parts.append(f"Số {details['house_number']}")
        parts.append(first('road', 'street', 'pedestrian'))
        parts.append(details.get('quarter'))
        parts.append(details.get('neighbourhood'))
        parts.append(first('suburb', 'village'))
        parts.append(first('city_district', 'district', 'county'))
        parts.append(first('city', 'town'))
        if not details.get('city'):
            parts.append(details.get('state'))

        composed = ', '.join(part for part in parts if part)
        if not composed:
            return display_name
        # A bare city name is less useful than the full display name
        if len(composed) < MIN_COMPOSED_LENGTH and display_name and len(display_name) > len(composed):
            return display_name
        return composed
