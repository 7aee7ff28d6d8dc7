"""Reverse geocoding collaborators."""

from .base import Address, ReverseGeocoder, coord_key
from .nominatim import NominatimConfig, NominatimGeocoder, address_from_nominatim

__all__ = [
    "Address",
    "NominatimConfig",
    "NominatimGeocoder",
    "ReverseGeocoder",
    "address_from_nominatim",
    "coord_key",
]
