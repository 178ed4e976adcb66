"""Ceph RBD client built on the rbd CLI.

All commands target the configured pool. Output of showmapped and list is
requested as JSON and validated with pydantic before use.
"""

import asyncio
import logging

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from rbd_volume_plugin.config import CommandConfig, RbdConfig
from rbd_volume_plugin.errors import (
    AttachError,
    CommandError,
    CreateError,
    DetachError,
    OutputValidationError,
    RemoveError,
)
from rbd_volume_plugin.infra.best_effort import best_effort
from rbd_volume_plugin.infra.command import CommandRunner
from rbd_volume_plugin.logging_schema import LogEvent

logger = logging.getLogger(__name__)

RBD = "rbd"


# =============================================================================
# Pydantic Models
# =============================================================================


class MappedDevice(BaseModel):
    """One entry of `rbd showmapped --format json`."""

    id: str
    pool: str
    namespace: str
    name: str
    snap: str
    device: str

    model_config = {"frozen": True}


class ImageInfo(BaseModel):
    """One entry of `rbd list --long --format json`.

    Snapshots are listed as extra entries carrying the parent image name
    and a snapshot field.
    """

    image: str
    id: str
    size: int
    format: int
    snapshot: str | None = None

    model_config = {"frozen": True}


_MAPPED_ADAPTER = TypeAdapter(list[MappedDevice])
_IMAGES_ADAPTER = TypeAdapter(list[ImageInfo])


def _validate(adapter: TypeAdapter, stdout: str, what: str) -> list:
    # rbd prints nothing at all when there is nothing to show
    if not stdout.strip():
        return []
    try:
        return adapter.validate_json(stdout)
    except PydanticValidationError as e:
        raise OutputValidationError(
            f"{what} output validation failed: {e.errors(include_url=False)}"
        ) from e


# =============================================================================
# RBD Client
# =============================================================================


class RbdClient:
    """Attach, detach, create and remove RBD images in one pool."""

    def __init__(
        self,
        config: RbdConfig,
        command: CommandConfig,
        runner: CommandRunner | None = None,
    ) -> None:
        self._config = config
        self._command = command
        self._runner = runner or CommandRunner()

    @property
    def pool(self) -> str:
        return self._config.pool

    async def _rbd(self, *args: str) -> str:
        result = await self._runner.run(RBD, list(args), timeout=self._command.timeout)
        return result.stdout

    async def query_attachment(self, name: str) -> str | None:
        """Return the device the image is mapped to on this host, if any.

        Raises:
            CommandError: rbd showmapped failed.
            OutputValidationError: Output is not a list of mapped devices.
        """
        stdout = await self._rbd("showmapped", "--format", "json")
        entries = _validate(_MAPPED_ADAPTER, stdout, "rbd showmapped")

        for entry in entries:
            if entry.pool == self.pool and entry.name == name:
                return entry.device
        return None

    async def _is_mapped(self, name: str) -> bool:
        return await self.query_attachment(name) is not None

    async def attach(self, name: str) -> str:
        """Map the image and return its device (idempotent)."""
        device = await best_effort(
            self.query_attachment(name),
            expected=(CommandError, OutputValidationError),
            description=f"Mapping check for {name}",
        )
        if device:
            logger.debug("Image %s already mapped at %s", name, device)
            return device

        try:
            stdout = await self._rbd("map", *self._config.map_options, "--pool", self.pool, name)
        except CommandError as e:
            raise AttachError.from_command(e, f"rbd map {name}") from e

        device = stdout.strip()
        logger.info(
            "Mapped image",
            extra={"event": LogEvent.DEVICE_MAPPED, "image": name, "device": device},
        )
        return device

    async def detach(self, name: str) -> None:
        """Unmap the image if mapped (idempotent).

        Waits for showmapped to stop listing the image. Not seeing that
        within the poll budget (or failing to check) is logged, not raised:
        unmap itself succeeded.
        """
        mapped = await best_effort(
            self._is_mapped(name),
            expected=(CommandError, OutputValidationError),
            description=f"Mapping check for {name}",
        )
        # None means the check failed, so try the unmap anyway
        if mapped is False:
            logger.debug("Image %s is not mapped", name)
            return

        try:
            await self._rbd("unmap", "--pool", self.pool, name)
        except CommandError as e:
            raise DetachError.from_command(e, f"rbd unmap {name}") from e

        for _ in range(self._command.poll_attempts):
            mapped = await best_effort(
                self._is_mapped(name),
                expected=(CommandError, OutputValidationError),
                description=f"Unmap confirmation for {name}",
            )
            if mapped is False:
                logger.info(
                    "Unmapped image",
                    extra={"event": LogEvent.DEVICE_UNMAPPED, "image": name},
                )
                return
            await asyncio.sleep(self._command.poll_interval)

        logger.warning(
            "Unmap not confirmed, image may still be listed as mapped",
            extra={
                "event": LogEvent.UNMAP_UNCONFIRMED,
                "image": name,
                "attempts": self._command.poll_attempts,
            },
        )

    async def list(self) -> list[ImageInfo]:
        """List images in the pool, in rbd's order.

        Raises:
            CommandError: rbd list failed.
            OutputValidationError: Output is not a list of image records.
        """
        stdout = await self._rbd("list", "--pool", self.pool, "--long", "--format", "json")
        return _validate(_IMAGES_ADAPTER, stdout, "rbd list")

    async def info(self, name: str) -> ImageInfo | None:
        for image in await self.list():
            if image.image == name and image.snapshot is None:
                return image
        return None

    async def create(self, name: str, size: str) -> bool:
        """Create the image. Returns True once rbd create succeeded."""
        features = ["--image-feature", self._config.rbd_options] if self._config.rbd_options else []
        try:
            await self._rbd(
                "create",
                "--order",
                self._config.order,
                "--pool",
                self.pool,
                "--size",
                size,
                *features,
                name,
            )
        except CommandError as e:
            raise CreateError.from_command(e, f"rbd create {name}") from e

        logger.info(
            "Created image",
            extra={"event": LogEvent.IMAGE_CREATED, "image": name, "size": size},
        )
        return True

    async def remove(self, name: str) -> None:
        """Move the image to the pool's trash.

        The image leaves the visible namespace immediately; data is reclaimed
        when the trash is purged.
        """
        try:
            await self._rbd("trash", "move", "--pool", self.pool, name)
        except CommandError as e:
            raise RemoveError.from_command(e, f"rbd trash move {name}") from e

        logger.info(
            "Moved image to trash",
            extra={"event": LogEvent.IMAGE_TRASHED, "image": name},
        )
