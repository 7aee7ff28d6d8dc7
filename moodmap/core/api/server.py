"""HTTP front end for a MoodMap service.

The aiohttp application runs on the service's own event loop, next to
ingestion. Route handlers reach the service through ``app["controller"]``.
"""

from typing import Any, Callable, Iterable, Optional

from aiohttp import web

from moodmap.core.logging_utils import get_module_logger

from .middleware import (
    error_handling_middleware,
    localhost_only_middleware,
    request_logging_middleware,
    set_debug_mode,
)
from .routes import setup_all_routes


logger = get_module_logger("APIServer")

RouteSetup = Callable[[web.Application, Any], None]


class APIServer:
    """Serves the system routes plus whatever ``route_setups`` register.

    ``port=0`` binds an ephemeral port; ``port`` holds the real one once
    :meth:`start` returns.
    """

    def __init__(
        self,
        controller: Any,
        *,
        host: str = "127.0.0.1",
        port: int = 8765,
        localhost_only: bool = True,
        debug: bool = False,
        route_setups: Iterable[RouteSetup] = (),
    ):
        self.controller = controller
        self.host = host
        self.port = port
        self.localhost_only = localhost_only
        self.debug = debug
        self.route_setups = tuple(route_setups)
        self._runner: Optional[web.AppRunner] = None

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def create_app(self) -> web.Application:
        set_debug_mode(self.debug)
        middlewares = [request_logging_middleware, error_handling_middleware]
        if self.localhost_only:
            middlewares.insert(0, localhost_only_middleware)

        app = web.Application(middlewares=middlewares)
        app["controller"] = self.controller
        setup_all_routes(app, self.controller, self.route_setups)
        return app

    async def start(self) -> None:
        """Bind and start serving without blocking.

        Raises:
            OSError: If the address cannot be bound.
        """
        if self._runner is not None:
            logger.warning("API server already running on %s", self.url)
            return

        runner = web.AppRunner(self.create_app(), access_log=None)
        await runner.setup()
        try:
            await web.TCPSite(runner, self.host, self.port).start()
        except OSError as exc:
            logger.error("Cannot bind API server to %s:%d: %s", self.host, self.port, exc)
            await runner.cleanup()
            raise

        if runner.addresses:
            self.port = runner.addresses[0][1]
        self._runner = runner
        logger.info("API server listening on %s%s", self.url, " (debug)" if self.debug else "")

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is None:
            return
        await runner.cleanup()
        logger.info("API server on %s stopped", self.url)


__all__ = ["APIServer", "RouteSetup"]
