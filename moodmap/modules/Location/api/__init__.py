"""HTTP surface of the Location module."""

from .controller import LocationApiController
from .routes import setup_location_routes

__all__ = ["LocationApiController", "setup_location_routes"]
