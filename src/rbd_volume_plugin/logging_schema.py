"""Log event types for structured logging."""

from enum import StrEnum


class LogEvent(StrEnum):
    """Log event types for the plugin.

    Used with logger.info/warning/error extra dict:
        logger.info("message", extra={"event": LogEvent.VOLUME_MOUNTED, ...})
    """

    # Application lifecycle
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"
    PLUGIN_ACTIVATED = "plugin_activated"

    # External commands
    COMMAND_FAILED = "command_failed"
    COMMAND_TIMEOUT = "command_timeout"

    # Block device events
    IMAGE_CREATED = "image_created"
    IMAGE_TRASHED = "image_trashed"
    DEVICE_MAPPED = "device_mapped"
    DEVICE_UNMAPPED = "device_unmapped"
    UNMAP_UNCONFIRMED = "unmap_unconfirmed"

    # Filesystem events
    FILESYSTEM_CREATED = "filesystem_created"
    FILESYSTEM_MOUNTED = "filesystem_mounted"
    FILESYSTEM_UNMOUNTED = "filesystem_unmounted"
    UNMOUNT_UNCONFIRMED = "unmount_unconfirmed"
    MOUNT_POINT_CLEANUP_FAILED = "mount_point_cleanup_failed"

    # Volume lifecycle events
    VOLUME_CREATED = "volume_created"
    VOLUME_MOUNTED = "volume_mounted"
    VOLUME_UNMOUNTED = "volume_unmounted"
    VOLUME_REMOVED = "volume_removed"

    # Reference tracking
    REFERENCES_LOADED = "references_loaded"
    REFERENCES_SAVE_FAILED = "references_save_failed"

    # Request events
    REQUEST_COMPLETE = "request_complete"
    REQUEST_SLOW = "request_slow"
    REQUEST_FAILED = "request_failed"

    # Error events
    BEST_EFFORT_FAILED = "best_effort_failed"
    DRIVER_ERROR = "driver_error"
    UNHANDLED_EXCEPTION = "unhandled_exception"
