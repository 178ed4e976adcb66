"""Plugin infrastructure layer: external commands on this host."""

from rbd_volume_plugin.infra.best_effort import best_effort
from rbd_volume_plugin.infra.command import CommandResult, CommandRunner
from rbd_volume_plugin.infra.filesystem import FilesystemClient
from rbd_volume_plugin.infra.rbd import ImageInfo, MappedDevice, RbdClient

__all__ = [
    "best_effort",
    # Commands
    "CommandResult",
    "CommandRunner",
    # Filesystem
    "FilesystemClient",
    # RBD
    "ImageInfo",
    "MappedDevice",
    "RbdClient",
]
