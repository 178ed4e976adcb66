"""Filesystem and mount operations built on mkfs, mount and umount."""

import asyncio
import logging
from pathlib import Path

from rbd_volume_plugin.config import CommandConfig
from rbd_volume_plugin.errors import (
    CommandError,
    MkfsError,
    MountError,
    MountQueryError,
    UnmountError,
)
from rbd_volume_plugin.infra.best_effort import best_effort
from rbd_volume_plugin.infra.command import CommandRunner
from rbd_volume_plugin.logging_schema import LogEvent

logger = logging.getLogger(__name__)

# Separator mkfs uses between generic and filesystem-specific arguments
FS_OPTIONS_SEPARATOR = "fs-options"


class FilesystemClient:
    """Formats devices and manages mount points on this host."""

    def __init__(self, command: CommandConfig, runner: CommandRunner | None = None) -> None:
        self._command = command
        self._runner = runner or CommandRunner()

    async def make_filesystem(self, fstype: str, device: str, options: str = "") -> None:
        """Create a filesystem of fstype on device.

        options is split on whitespace, e.g. "-m crc=1 -n ftype=1".
        """
        extra = [FS_OPTIONS_SEPARATOR, *options.split()] if options.strip() else []
        try:
            await self._runner.run(
                "mkfs",
                ["-t", fstype, *extra, device],
                timeout=self._command.mkfs_timeout,
            )
        except CommandError as e:
            raise MkfsError.from_command(e, f"mkfs -t {fstype} {device}") from e

        logger.info(
            "Created filesystem",
            extra={"event": LogEvent.FILESYSTEM_CREATED, "device": device, "fstype": fstype},
        )

    async def is_mounted(self, target: str) -> bool:
        """Check whether target (mount point or device) appears in the mount table."""
        try:
            result = await self._runner.run("mount", [], timeout=self._command.timeout)
        except CommandError as e:
            raise MountQueryError.from_command(e, "list mount") from e

        # Token match: /mnt/volumes/rbd/vol1 must not match .../vol10
        return any(target in line.split() for line in result.stdout.splitlines())

    async def mount(self, device: str, path: str) -> None:
        """Mount device at path, taking over the mount point if it is busy."""
        await best_effort(
            self.unmount(path, log_errors=False),
            expected=(UnmountError, MountQueryError),
            description=f"Pre-mount unmount of {path}",
            log_level=logging.DEBUG,
        )
        Path(path).mkdir(parents=True, exist_ok=True)

        try:
            await self._runner.run("mount", [device, path], timeout=self._command.timeout)
        except CommandError as e:
            raise MountError.from_command(e, f"mount {device} {path}") from e

        logger.info(
            "Mounted filesystem",
            extra={"event": LogEvent.FILESYSTEM_MOUNTED, "device": device, "path": path},
        )

    async def unmount(self, path: str, log_errors: bool = True) -> None:
        """Unmount path and remove the mount point directory.

        Waits for the mount table to drop path. Not seeing that within the
        poll budget (or failing to check) is logged, not raised: umount itself
        succeeded and the mount point is still removed.

        Raises:
            UnmountError: umount failed.
        """
        try:
            await self._runner.run("umount", [path], timeout=self._command.timeout)
        except CommandError as e:
            if log_errors:
                logger.error("umount %s failed: %s", path, e.message)
            raise UnmountError.from_command(e, f"umount {path}") from e

        for _ in range(self._command.poll_attempts):
            mounted = await best_effort(
                self.is_mounted(path),
                expected=(MountQueryError,),
                description=f"Unmount confirmation for {path}",
            )
            if mounted is False:
                logger.info(
                    "Unmounted filesystem",
                    extra={"event": LogEvent.FILESYSTEM_UNMOUNTED, "path": path},
                )
                break
            await asyncio.sleep(self._command.poll_interval)
        else:
            logger.warning(
                "Umount not confirmed, mount point may still be listed",
                extra={
                    "event": LogEvent.UNMOUNT_UNCONFIRMED,
                    "path": path,
                    "attempts": self._command.poll_attempts,
                },
            )

        self._remove_mount_point(path)

    def _remove_mount_point(self, path: str) -> None:
        try:
            Path(path).rmdir()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "Failed to remove mount point",
                extra={"event": LogEvent.MOUNT_POINT_CLEANUP_FAILED, "path": path, "error": str(e)},
            )
