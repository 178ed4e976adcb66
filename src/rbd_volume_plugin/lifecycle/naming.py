"""Mount point naming for volumes."""

import posixpath

from rbd_volume_plugin.config import PluginConfig


class VolumeNaming:
    """Maps volume names to their canonical mount points."""

    def __init__(self, config: PluginConfig) -> None:
        self._root = config.volume.mount_root
        self._pool = config.rbd.pool

    def mount_point(self, name: str) -> str:
        """<mount_root>/<pool>/<name>"""
        return posixpath.join(self._root, self._pool, name)
