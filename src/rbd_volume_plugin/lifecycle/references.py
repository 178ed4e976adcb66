"""Mount reference tracking.

Docker calls Mount once per container start and Unmount once per container
stop, each with the caller's ID. ReferenceTable records which callers
currently hold each volume so teardown can wait for the last one.
"""

import json
import logging
import os
from pathlib import Path
from typing import NamedTuple

from rbd_volume_plugin.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class ReferenceRemoval(NamedTuple):
    remaining: int
    removed: bool


class ReferenceTable:
    """Volume name -> set of caller IDs holding a mount."""

    def __init__(self) -> None:
        self._refs: dict[str, set[str]] = {}

    def add(self, name: str, caller_id: str) -> int:
        """Record caller_id on name and return the holder count."""
        holders = self._refs.setdefault(name, set())
        holders.add(caller_id)
        return len(holders)

    def remove(self, name: str, caller_id: str) -> ReferenceRemoval:
        """Drop caller_id from name.

        Never goes negative: unknown names and IDs report removed=False.
        """
        holders = self._refs.get(name)
        if holders is None:
            return ReferenceRemoval(remaining=0, removed=False)

        removed = caller_id in holders
        holders.discard(caller_id)
        if not holders:
            del self._refs[name]

        return ReferenceRemoval(remaining=len(holders), removed=removed)

    def count(self, name: str) -> int:
        return len(self._refs.get(name, ()))

    def clear(self, name: str) -> int:
        """Drop every holder of name and return how many there were."""
        return len(self._refs.pop(name, ()))

    def __len__(self) -> int:
        return len(self._refs)

    def snapshot(self) -> dict[str, list[str]]:
        return {name: sorted(holders) for name, holders in self._refs.items()}

    @classmethod
    def from_snapshot(cls, data: dict[str, list[str]]) -> "ReferenceTable":
        table = cls()
        for name, holders in data.items():
            for caller_id in holders:
                table.add(name, caller_id)
        return table


class ReferenceStore:
    """JSON file persistence for a ReferenceTable.

    Writes go to a temp file that is renamed over the target, so a crash
    mid-write leaves the previous state intact.
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    def load(self) -> ReferenceTable:
        if not self._path.exists():
            logger.info("No persisted references at %s, starting empty", self._path)
            return ReferenceTable()

        with open(self._path) as f:
            data = json.load(f)
        return ReferenceTable.from_snapshot(data)

    def save(self, table: ReferenceTable) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(table.snapshot(), f, indent=2)
        os.replace(tmp_path, self._path)

    def save_quietly(self, table: ReferenceTable) -> None:
        """Save, logging instead of raising on I/O errors.

        A failed save must not fail the Mount/Unmount that triggered it.
        """
        try:
            self.save(table)
        except OSError as e:
            logger.error(
                "Failed to save references",
                extra={"event": LogEvent.REFERENCES_SAVE_FAILED, "path": str(self._path), "error": str(e)},
            )
