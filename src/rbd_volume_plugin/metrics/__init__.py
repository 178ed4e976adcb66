"""Prometheus metrics for the RBD volume plugin."""

from rbd_volume_plugin.metrics.collector import (
    DRIVER_OPERATIONS,
    PLUGIN_COMMAND_DURATION,
    PLUGIN_COMMAND_ERRORS,
    PLUGIN_DRIVER_DURATION,
    PLUGIN_DRIVER_ERRORS,
    PLUGIN_REFERENCED_VOLUMES,
)

__all__ = [
    "DRIVER_OPERATIONS",
    "PLUGIN_COMMAND_DURATION",
    "PLUGIN_COMMAND_ERRORS",
    "PLUGIN_DRIVER_DURATION",
    "PLUGIN_DRIVER_ERRORS",
    "PLUGIN_REFERENCED_VOLUMES",
]
