"""Volume lifecycle orchestration.

Turns Docker volume driver requests into rbd, mkfs and mount operations:

    Absent --create--> Created --mount--> Attached + Mounted
    Mounted --unmount--> Created --remove--> Absent (image in trash)

Nothing about a volume is stored here except mount references. Whether an
image exists, is mapped, or is mounted is always read back from rbd and the
mount table, so every operation is safe to repeat.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel

from rbd_volume_plugin.errors import MountQueryError, VolumeNotMountedError
from rbd_volume_plugin.infra import FilesystemClient, RbdClient, best_effort
from rbd_volume_plugin.lifecycle.lock import VolumeLocks
from rbd_volume_plugin.lifecycle.references import ReferenceStore, ReferenceTable
from rbd_volume_plugin.lifecycle.result import OperationResult, OperationStatus
from rbd_volume_plugin.logging_schema import LogEvent
from rbd_volume_plugin.metrics import PLUGIN_REFERENCED_VOLUMES

if TYPE_CHECKING:
    from rbd_volume_plugin.config import PluginConfig
    from rbd_volume_plugin.lifecycle.naming import VolumeNaming

logger = logging.getLogger(__name__)


class VolumeInfo(BaseModel):
    name: str
    mountpoint: str
    size: int


class VolumeLifecycle:
    """Create/mount/unmount/remove state machine for RBD-backed volumes."""

    def __init__(
        self,
        config: PluginConfig,
        naming: VolumeNaming,
        rbd: RbdClient | None = None,
        fs: FilesystemClient | None = None,
        store: ReferenceStore | None = None,
    ) -> None:
        self._config = config
        self._naming = naming
        self._rbd = rbd or RbdClient(config.rbd, config.command)
        self._fs = fs or FilesystemClient(config.command)
        if store is None and config.volume.state_file:
            store = ReferenceStore(config.volume.state_file)
        self._store = store
        self._refs = ReferenceTable()
        self._locks = VolumeLocks()

    @property
    def references(self) -> ReferenceTable:
        return self._refs

    def mount_point(self, name: str) -> str:
        return self._naming.mount_point(name)

    def _references_changed(self) -> None:
        PLUGIN_REFERENCED_VOLUMES.set(len(self._refs))
        if self._store is not None:
            self._store.save_quietly(self._refs)

    # =========================================================================
    # Startup
    # =========================================================================

    async def restore_references(self) -> None:
        """Reload persisted references and drop those whose mount is gone.

        Without a state file references start empty, so after a restart the
        next Unmount of a shared volume may tear it down early.
        """
        if self._store is None:
            return

        try:
            table = self._store.load()
        except (OSError, ValueError) as e:
            logger.error("Failed to load references, starting empty: %s", e)
            return

        for name in list(table.snapshot()):
            mounted = await best_effort(
                self._fs.is_mounted(self.mount_point(name)),
                expected=(MountQueryError,),
                description=f"Mount check for {name}",
            )
            # Keep entries we could not check; the next Unmount re-checks anyway
            if mounted is False:
                table.clear(name)

        self._refs = table
        self._references_changed()
        logger.info(
            "Restored mount references",
            extra={"event": LogEvent.REFERENCES_LOADED, "volumes": len(table)},
        )

    # =========================================================================
    # Mutating operations
    # =========================================================================

    async def create(
        self,
        name: str,
        size: str | None = None,
        fstype: str | None = None,
        mkfs_options: str | None = None,
    ) -> OperationResult:
        """Create the image and lay down a filesystem on it.

        The image is mapped only while mkfs runs and is left unmapped.
        An existing image makes rbd create fail with CreateError.
        A failure after rbd create leaves the image in place.
        """
        volume = self._config.volume
        size = size or volume.default_size
        fstype = fstype or volume.default_fstype
        mkfs_options = mkfs_options if mkfs_options is not None else volume.default_mkfs_options

        async with self._locks.get(name):
            if await self._rbd.create(name, size):
                device = await self._rbd.attach(name)
                await self._fs.make_filesystem(fstype, device, mkfs_options)
                await self._rbd.detach(name)

            logger.info(
                "Volume created",
                extra={"event": LogEvent.VOLUME_CREATED, "volume": name, "size": size, "fstype": fstype},
            )
            return OperationResult(status=OperationStatus.COMPLETED)

    async def mount(self, name: str, caller_id: str) -> str:
        """Make the volume available at its mount point for caller_id.

        A failed mount leaves the image mapped for the next attempt.
        """
        path = self.mount_point(name)

        async with self._locks.get(name):
            if await self._fs.is_mounted(path):
                count = self._refs.add(name, caller_id)
                self._references_changed()
                logger.info(
                    "Volume already mounted",
                    extra={"event": LogEvent.VOLUME_MOUNTED, "volume": name, "path": path, "references": count},
                )
                return path

            device = await self._rbd.attach(name)
            await self._fs.mount(device, path)

            count = self._refs.add(name, caller_id)
            self._references_changed()
            logger.info(
                "Volume mounted",
                extra={
                    "event": LogEvent.VOLUME_MOUNTED,
                    "volume": name,
                    "device": device,
                    "path": path,
                    "references": count,
                },
            )
            return path

    async def unmount(self, name: str, caller_id: str) -> OperationResult:
        """Release caller_id's hold on the volume.

        With unmount_policy "always" the mount and mapping are torn down on
        every call that finds them, even if other callers still hold
        references. With "last_reference" teardown waits for the last holder.
        """
        path = self.mount_point(name)

        async with self._locks.get(name):
            removal = self._refs.remove(name, caller_id)
            self._references_changed()

            if self._config.volume.unmount_policy == "last_reference" and removal.remaining > 0:
                logger.info(
                    "Volume still referenced, keeping mount",
                    extra={"event": LogEvent.VOLUME_UNMOUNTED, "volume": name, "references": removal.remaining},
                )
                return OperationResult(
                    status=OperationStatus.STILL_REFERENCED,
                    references=removal.remaining,
                )

            torn_down = False
            if await self._fs.is_mounted(path):
                await self._fs.unmount(path)
                torn_down = True
            if await self._rbd.query_attachment(name) is not None:
                await self._rbd.detach(name)
                torn_down = True

            if not torn_down:
                return OperationResult(
                    status=OperationStatus.ALREADY_UNMOUNTED,
                    references=removal.remaining,
                )

            logger.info(
                "Volume unmounted",
                extra={"event": LogEvent.VOLUME_UNMOUNTED, "volume": name, "references": removal.remaining},
            )
            return OperationResult(status=OperationStatus.COMPLETED, references=removal.remaining)

    async def remove(self, name: str) -> OperationResult:
        """Unmount, unmap and trash the image. Each step is skipped if already done."""
        path = self.mount_point(name)

        async with self._locks.get(name):
            if await self._fs.is_mounted(path):
                await self._fs.unmount(path)
            await self._rbd.detach(name)
            await self._rbd.remove(name)

            if self._refs.clear(name):
                self._references_changed()

            logger.info("Volume removed", extra={"event": LogEvent.VOLUME_REMOVED, "volume": name})
            return OperationResult(status=OperationStatus.COMPLETED)

    # =========================================================================
    # Queries
    # =========================================================================

    async def path(self, name: str) -> str:
        path = self.mount_point(name)
        if not await self._fs.is_mounted(path):
            raise VolumeNotMountedError(name)
        return path

    async def get(self, name: str) -> VolumeInfo | None:
        info = await self._rbd.info(name)
        if info is None:
            return None
        return VolumeInfo(name=name, mountpoint=self.mount_point(name), size=info.size)

    async def list(self) -> list[str]:
        """Volume names in rbd list order (snapshots excluded)."""
        return [image.image for image in await self._rbd.list() if image.snapshot is None]
