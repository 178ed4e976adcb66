"""Per-volume locks for lifecycle operations."""

import asyncio


class VolumeLocks:
    """Lazily created asyncio.Lock per volume name.

    Create, Mount, Unmount and Remove for one volume hold its lock, so a
    container stopping and another starting on the same volume cannot
    interleave their map/mount/umount/unmap steps.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, name: str) -> asyncio.Lock:
        if name not in self._locks:
            self._locks[name] = asyncio.Lock()
        return self._locks[name]
