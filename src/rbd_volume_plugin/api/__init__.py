"""Plugin API endpoints."""

from rbd_volume_plugin.api.health import router as health_router
from rbd_volume_plugin.api.plugin import router as plugin_router
from rbd_volume_plugin.api.volume_driver import router as volume_driver_router

__all__ = [
    "health_router",
    "plugin_router",
    "volume_driver_router",
]
