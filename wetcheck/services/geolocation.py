"""
Device location and reverse geocoding.

A PositionSource supplies the device's current coordinates; the reverse
geocoder turns coordinates into a street line and a city line using the
OpenStreetMap Nominatim API.
"""

import re
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import requests

from wetcheck.exceptions import GeocodingError, GeolocationError
from utils.logger import setup_logger
from utils.config import config

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="GEOLOCATION")

_TARGET_PATTERN = re.compile(r"^(?:(?P<fixed>client|pump)|(?P<kind>zone|ctrl)-(?P<id>[1-9]\d*))$")


def parse_target_key(key: str) -> Tuple[str, Optional[int]]:
    """
    Split a location target key into (kind, id).

    Valid keys are "client", "pump", "zone-{id}" and "ctrl-{id}".

    Raises:
        ValueError: If the key is not one of those forms
    """
    match = _TARGET_PATTERN.match(key or "")
    if not match:
        raise ValueError(f"Invalid location target: '{key}'")
    if match.group("fixed"):
        return match.group("fixed"), None
    return match.group("kind"), int(match.group("id"))


def zone_target(zone_id: int) -> str:
    return f"zone-{zone_id}"


def controller_target(controller_id: int) -> str:
    return f"ctrl-{controller_id}"


class PositionSource(Protocol):
    def current_position(self, timeout: float, high_accuracy: bool) -> Tuple[float, float]:
        """
        Return (lat, lng) of the device.

        Raises:
            GeolocationError: If permission is denied, the request times out
                or positioning is unsupported
        """
        ...


class UnsupportedPositionSource:
    """PositionSource for hosts without positioning hardware."""

    def current_position(self, timeout: float, high_accuracy: bool) -> Tuple[float, float]:
        raise GeolocationError("unsupported", "Geolocation not supported")


class FixedPositionSource:
    """PositionSource that always reports the same coordinates."""

    def __init__(self, lat: float, lng: float):
        self.lat = lat
        self.lng = lng

    def current_position(self, timeout: float, high_accuracy: bool) -> Tuple[float, float]:
        return self.lat, self.lng


@dataclass
class ReverseGeocodeResult:
    street: str = ""
    city: str = ""


class ReverseGeocoder(Protocol):
    def reverse(self, lat: float, lng: float) -> ReverseGeocodeResult:
        ...


class NominatimReverseGeocoder:
    """Reverse geocoder backed by the Nominatim HTTP API."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        user_agent: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.endpoint = endpoint or config.geocoder_endpoint
        self.user_agent = user_agent or config.geocoder_user_agent
        self.language = language or config.geocoder_language
        self.timeout = timeout or config.geocoder_timeout
        self.session = session or requests.Session()

    @staticmethod
    def parse_address(address: dict) -> ReverseGeocodeResult:
        """Street is 'house_number road'; city is 'city|town|village, state, postcode'."""
        street = " ".join(p for p in (address.get("house_number"), address.get("road")) if p)
        locality = address.get("city") or address.get("town") or address.get("village")
        city = ", ".join(p for p in (locality, address.get("state"), address.get("postcode")) if p)
        return ReverseGeocodeResult(street=street, city=city)

    def reverse(self, lat: float, lng: float) -> ReverseGeocodeResult:
        """
        Look up the address at (lat, lng).

        Raises:
            GeocodingError: On transport errors, non-200 responses or a body
                without an address
        """
        params = {"lat": lat, "lon": lng, "format": "json", "addressdetails": 1}
        headers = {"Accept-Language": self.language, "User-Agent": self.user_agent}

        try:
            response = self.session.get(self.endpoint, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise GeocodingError(f"Reverse geocoding request failed: {e}") from e

        if response.status_code != 200:
            raise GeocodingError(
                f"Reverse geocoding failed: {response.status_code} {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GeocodingError(f"Reverse geocoding returned invalid JSON: {e}") from e

        address = body.get("address") if isinstance(body, dict) else None
        if not address:
            raise GeocodingError("Reverse geocoding returned no address")

        result = self.parse_address(address)
        logger.debug(f"Reverse geocoded {lat:.5f},{lng:.5f} -> {result.street!r}, {result.city!r}")
        return result
