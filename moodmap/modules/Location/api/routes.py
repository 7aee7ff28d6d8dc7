"""Location module API routes."""

import json

from aiohttp import web

from moodmap.core.api.middleware import create_error_response, parse_json_body, result_to_response


_EMPTY_STORE = ("NO_SAMPLES", "No samples stored")
_TRUE_VALUES = {"1", "true", "yes", "on"}


def setup_location_routes(app: web.Application, controller) -> None:
    """Register Location-specific routes."""
    app.router.add_get("/api/v1/location/samples", query_samples_handler)
    app.router.add_post("/api/v1/location/samples", insert_sample_handler)
    app.router.add_delete("/api/v1/location/samples", clear_samples_handler)
    app.router.add_get("/api/v1/location/samples/all", all_samples_handler)
    app.router.add_get("/api/v1/location/samples/first", first_sample_handler)
    app.router.add_get("/api/v1/location/samples/last", last_sample_handler)
    app.router.add_get("/api/v1/location/bounds", bounds_handler)
    app.router.add_get("/api/v1/location/current", current_handler)
    app.router.add_post("/api/v1/location/events", push_event_handler)


async def query_samples_handler(request: web.Request) -> web.Response:
    """GET /api/v1/location/samples?at=... - Samples recorded in that second."""
    controller = request.app["controller"]
    at = request.query.get("at")
    if not at:
        return create_error_response("MISSING_PARAMETER", "Query parameter 'at' is required", status=400)
    return web.json_response(await controller.query_samples(at))


async def insert_sample_handler(request: web.Request) -> web.Response:
    """POST /api/v1/location/samples - Store one sample."""
    controller = request.app["controller"]
    body, error = await parse_json_body(request)
    if error:
        return error
    result = await controller.insert_sample(body)
    return web.json_response(result, status=201)


async def clear_samples_handler(request: web.Request) -> web.Response:
    """DELETE /api/v1/location/samples - Delete every stored sample."""
    controller = request.app["controller"]
    result = await controller.clear_samples()
    if not result["success"]:
        return create_error_response("CLEAR_FAILED", result["error"], status=500)
    return web.json_response(result)


async def all_samples_handler(request: web.Request) -> web.StreamResponse:
    """GET /api/v1/location/samples/all - Every sample as NDJSON, oldest first."""
    controller = request.app["controller"]
    response = web.StreamResponse(headers={"Content-Type": "application/x-ndjson"})
    await response.prepare(request)
    async for item in controller.iter_sample_dicts():
        await response.write((json.dumps(item) + "\n").encode("utf-8"))
    await response.write_eof()
    return response


async def first_sample_handler(request: web.Request) -> web.Response:
    """GET /api/v1/location/samples/first - Oldest sample."""
    controller = request.app["controller"]
    return result_to_response(await controller.get_first(), *_EMPTY_STORE)


async def last_sample_handler(request: web.Request) -> web.Response:
    """GET /api/v1/location/samples/last - Newest sample."""
    controller = request.app["controller"]
    return result_to_response(await controller.get_last(), *_EMPTY_STORE)


async def bounds_handler(request: web.Request) -> web.Response:
    """GET /api/v1/location/bounds - Date-picker bounds (``?refresh=true`` recomputes)."""
    controller = request.app["controller"]
    refresh = request.query.get("refresh", "").strip().lower() in _TRUE_VALUES
    return web.json_response(await controller.get_bounds(refresh=refresh))


async def current_handler(request: web.Request) -> web.Response:
    """GET /api/v1/location/current - Latest fix and resolved address."""
    controller = request.app["controller"]
    return web.json_response(await controller.get_current())


async def push_event_handler(request: web.Request) -> web.Response:
    """POST /api/v1/location/events - Feed a client location fix into ingestion."""
    controller = request.app["controller"]
    body, error = await parse_json_body(request)
    if error:
        return error
    result = await controller.push_event(body)
    if result is None:
        return create_error_response("PUSH_DISABLED", "Location source does not accept pushed events", status=404)
    return web.json_response(result, status=202 if result["success"] else 503)
