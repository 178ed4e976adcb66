"""Error handling module for rbd_volume_plugin.

This module defines error codes and exception classes for every failure the
plugin can report to Docker.

Docker's volume plugin protocol has no status codes: a failure is a normal
response whose "Err" field carries the message, so each error only needs a
code (for logs and metrics) and a human-readable message.

Usage:
    from rbd_volume_plugin.errors import AttachError

    raise AttachError.from_command(exc, "rbd map")
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for plugin failures."""

    COMMAND_FAILED = "COMMAND_FAILED"
    INVALID_OUTPUT = "INVALID_OUTPUT"
    ATTACH_FAILED = "ATTACH_FAILED"
    DETACH_FAILED = "DETACH_FAILED"
    CREATE_FAILED = "CREATE_FAILED"
    REMOVE_FAILED = "REMOVE_FAILED"
    MKFS_FAILED = "MKFS_FAILED"
    MOUNT_FAILED = "MOUNT_FAILED"
    UNMOUNT_FAILED = "UNMOUNT_FAILED"
    MOUNT_QUERY_FAILED = "MOUNT_QUERY_FAILED"
    VOLUME_NOT_MOUNTED = "VOLUME_NOT_MOUNTED"
    INVALID_REQUEST = "INVALID_REQUEST"


class PluginError(Exception):
    """Base exception for rbd_volume_plugin.

    All plugin-specific exceptions inherit from this class so the HTTP layer
    can translate them into driver protocol responses in one place.

    Attributes:
        code: The error code from ErrorCode enum.
        message: Human-readable error message (sent to Docker as "Err").
        exit_code: Exit code of the external command behind the failure, if any.
    """

    code: ErrorCode = ErrorCode.COMMAND_FAILED

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        self.message = message
        self.exit_code = exit_code
        super().__init__(message)

    @classmethod
    def from_command(cls, exc: "CommandError", what: str) -> "PluginError":
        """Wrap a CommandError, keeping its exit code."""
        return cls(
            f"{what} failed with code {exc.exit_code}: {exc.message}",
            exit_code=exc.exit_code,
        )


class CommandError(PluginError):
    """External command exited non-zero, timed out, or could not be spawned.

    exit_code is None for timeouts and spawn failures.
    """

    code = ErrorCode.COMMAND_FAILED

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, exit_code)
        self.stderr = stderr


class OutputValidationError(PluginError):
    """Command output did not match the expected structured shape."""

    code = ErrorCode.INVALID_OUTPUT


class AttachError(PluginError):
    code = ErrorCode.ATTACH_FAILED


class DetachError(PluginError):
    code = ErrorCode.DETACH_FAILED


class CreateError(PluginError):
    code = ErrorCode.CREATE_FAILED


class RemoveError(PluginError):
    code = ErrorCode.REMOVE_FAILED


class MkfsError(PluginError):
    code = ErrorCode.MKFS_FAILED


class MountError(PluginError):
    code = ErrorCode.MOUNT_FAILED


class UnmountError(PluginError):
    code = ErrorCode.UNMOUNT_FAILED


class MountQueryError(PluginError):
    code = ErrorCode.MOUNT_QUERY_FAILED


class VolumeNotMountedError(PluginError):
    """Path requested for a volume that has no active mount."""

    code = ErrorCode.VOLUME_NOT_MOUNTED

    def __init__(self, name: str) -> None:
        super().__init__(f"Volume {name} is not mounted")


class InvalidRequestError(PluginError):
    """Driver request body could not be parsed."""

    code = ErrorCode.INVALID_REQUEST
