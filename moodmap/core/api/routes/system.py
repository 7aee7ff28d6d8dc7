"""
System Routes - Health and status endpoints.
"""

from aiohttp import web


def setup_system_routes(app: web.Application, controller) -> None:
    """Register system routes."""
    app.router.add_get("/api/v1/health", health_handler)
    app.router.add_get("/api/v1/status", status_handler)


async def health_handler(request: web.Request) -> web.Response:
    """GET /api/v1/health - Health check."""
    controller = request.app["controller"]
    result = await controller.health_check()
    return web.json_response(result, status=200 if result.get("healthy", True) else 503)


async def status_handler(request: web.Request) -> web.Response:
    """GET /api/v1/status - Service status."""
    controller = request.app["controller"]
    return web.json_response(await controller.get_status())
