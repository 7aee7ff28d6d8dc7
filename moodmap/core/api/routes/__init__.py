"""
API route modules.

Core route modules (always present):
- system: Health and status

Module-specific routes live in each module's api/ package and are passed
in by the runtime that owns the server.
"""

from moodmap.core.logging_utils import get_module_logger

from .system import setup_system_routes


logger = get_module_logger("APIRoutes")


def setup_all_routes(app, controller, route_setups=()):
    """Register core routes, then every module-provided route setup."""
    setup_system_routes(app, controller)

    for setup_fn in route_setups:
        setup_fn(app, controller)
        logger.debug("Loaded routes from %s", getattr(setup_fn, "__module__", setup_fn))


__all__ = ["setup_all_routes"]
