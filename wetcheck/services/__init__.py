"""
Services used by the inspection state machine.
"""

from wetcheck.services.notifications import Notification, Notifier, NotificationCenter
from wetcheck.services.geolocation import (
    PositionSource,
    UnsupportedPositionSource,
    FixedPositionSource,
    ReverseGeocoder,
    ReverseGeocodeResult,
    NominatimReverseGeocoder,
    parse_target_key,
    zone_target,
    controller_target,
)

__all__ = [
    "Notification",
    "Notifier",
    "NotificationCenter",
    "PositionSource",
    "UnsupportedPositionSource",
    "FixedPositionSource",
    "ReverseGeocoder",
    "ReverseGeocodeResult",
    "NominatimReverseGeocoder",
    "parse_target_key",
    "zone_target",
    "controller_target",
]
