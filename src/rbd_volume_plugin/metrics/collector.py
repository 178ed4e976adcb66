"""Prometheus metrics definitions for the RBD volume plugin.

Two tiers:
- Command metrics: every rbd/mkfs/mount/umount invocation
- Driver metrics: every Docker volume plugin request
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================
# rbd/mount calls are usually sub-second; mkfs and confirmation polls take longer
_BUCKETS_COMMAND = (
    0.01, 0.05, 0.1, 0.25, 0.5,
    1, 2, 5, 10, 30,
    60, 120,
)  # 12 buckets

# =============================================================================
# Command Metrics
# =============================================================================

PLUGIN_COMMAND_DURATION = Histogram(
    "rbd_plugin_command_duration_seconds",
    "Duration of external commands",
    ["program"],  # rbd, mkfs, mount, umount
    buckets=_BUCKETS_COMMAND,
)

PLUGIN_COMMAND_ERRORS = Counter(
    "rbd_plugin_command_errors_total",
    "Total external command failures",
    ["program", "error_type"],  # error_type: exit_code, timeout, spawn
)

# =============================================================================
# Driver Request Metrics
# =============================================================================

PLUGIN_DRIVER_DURATION = Histogram(
    "rbd_plugin_driver_duration_seconds",
    "Duration of volume driver requests",
    ["operation"],  # create, remove, mount, unmount, path, get, list
    buckets=_BUCKETS_COMMAND,
)

PLUGIN_DRIVER_ERRORS = Counter(
    "rbd_plugin_driver_errors_total",
    "Total volume driver requests answered with Err",
    ["operation", "error_code"],
)

# =============================================================================
# Reference Metrics (Snapshot)
# =============================================================================

PLUGIN_REFERENCED_VOLUMES = Gauge(
    "rbd_plugin_referenced_volumes",
    "Number of volumes with at least one mount reference",
)

_PROGRAMS = ["rbd", "mkfs", "mount", "umount"]
DRIVER_OPERATIONS = ["create", "remove", "mount", "unmount", "path", "get", "list"]


def _init_metrics() -> None:
    """Initialize labeled metrics with zero values."""
    for program in _PROGRAMS:
        PLUGIN_COMMAND_DURATION.labels(program=program)
        for error_type in ("exit_code", "timeout", "spawn"):
            PLUGIN_COMMAND_ERRORS.labels(program=program, error_type=error_type)

    for op in DRIVER_OPERATIONS:
        PLUGIN_DRIVER_DURATION.labels(operation=op)


_init_metrics()
