"""Volume lifecycle: references, locks and the orchestrator."""

from rbd_volume_plugin.config import PluginConfig, get_plugin_config
from rbd_volume_plugin.lifecycle.lock import VolumeLocks
from rbd_volume_plugin.lifecycle.naming import VolumeNaming
from rbd_volume_plugin.lifecycle.orchestrator import VolumeInfo, VolumeLifecycle
from rbd_volume_plugin.lifecycle.references import (
    ReferenceRemoval,
    ReferenceStore,
    ReferenceTable,
)
from rbd_volume_plugin.lifecycle.result import OperationResult, OperationStatus


def create_lifecycle(config: PluginConfig | None = None) -> VolumeLifecycle:
    """Build a VolumeLifecycle wired to the real rbd and mount commands."""
    config = config or get_plugin_config()
    return VolumeLifecycle(config, VolumeNaming(config))


__all__ = [
    "create_lifecycle",
    "OperationResult",
    "OperationStatus",
    "ReferenceRemoval",
    "ReferenceStore",
    "ReferenceTable",
    "VolumeInfo",
    "VolumeLifecycle",
    "VolumeLocks",
    "VolumeNaming",
]
