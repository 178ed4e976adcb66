"""RBD volume plugin FastAPI application.

Served on a Unix socket in /run/docker/plugins so Docker discovers it as
the "rbd" volume driver.
"""

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rbd_volume_plugin import __version__
from rbd_volume_plugin.api import health_router, plugin_router, volume_driver_router
from rbd_volume_plugin.api.dependencies import close_lifecycle, init_lifecycle
from rbd_volume_plugin.config import get_plugin_config
from rbd_volume_plugin.errors import PluginError
from rbd_volume_plugin.logging import setup_logging
from rbd_volume_plugin.logging_schema import LogEvent
from rbd_volume_plugin.metrics import PLUGIN_DRIVER_ERRORS
from rbd_volume_plugin.middleware import RequestLoggingMiddleware, driver_operation

# Configure logging using config
_config = get_plugin_config()
setup_logging(_config.logging)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "Starting RBD volume plugin",
        extra={
            "event": LogEvent.APP_STARTED,
            "version": __version__,
            "pool": _config.rbd.pool,
            "unmount_policy": _config.volume.unmount_policy,
        },
    )

    await init_lifecycle()

    yield
    logger.info("Shutting down RBD volume plugin", extra={"event": LogEvent.APP_STOPPED})
    close_lifecycle()


app = FastAPI(
    title="RBD Volume Plugin",
    description="Docker volume driver for Ceph RBD images",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# Docker only understands {"Err": "..."}, so failures keep HTTP 200
@app.exception_handler(PluginError)
async def plugin_error_handler(request: Request, exc: PluginError) -> JSONResponse:
    """Translate PluginError into a driver protocol error response."""
    operation = driver_operation(request.url.path) or "other"
    PLUGIN_DRIVER_ERRORS.labels(operation=operation, error_code=exc.code.value).inc()
    logger.warning(
        "Driver request failed",
        extra={
            "event": LogEvent.DRIVER_ERROR,
            "error_code": exc.code.value,
            "error_message": exc.message,
            "exit_code": exc.exit_code,
            "path": request.url.path,
        },
    )
    return JSONResponse(status_code=200, content={"Err": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions with logging."""
    logger.exception(
        "Unhandled exception",
        extra={
            "event": LogEvent.UNHANDLED_EXCEPTION,
            "path": request.url.path,
            "method": request.method,
        },
    )
    operation = driver_operation(request.url.path) or "other"
    PLUGIN_DRIVER_ERRORS.labels(operation=operation, error_code="INTERNAL_ERROR").inc()
    return JSONResponse(status_code=200, content={"Err": str(exc) or type(exc).__name__})


app.include_router(health_router)
app.include_router(plugin_router)
app.include_router(volume_driver_router)


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def _prepare_socket(socket_path: str) -> None:
    os.makedirs(os.path.dirname(socket_path), exist_ok=True)
    # A socket left by a previous run makes bind() fail
    if os.path.exists(socket_path):
        os.remove(socket_path)


def main() -> None:
    """Run the plugin server on its Unix socket."""
    config = get_plugin_config()
    _prepare_socket(config.server.socket_path)
    logger.info("Plugin rbd listening on socket %s", config.server.socket_path)
    uvicorn.run(
        "rbd_volume_plugin.main:app",
        uds=config.server.socket_path,
        reload=False,
        log_config=None,
    )


if __name__ == "__main__":
    main()
