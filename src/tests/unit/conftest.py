"""Fixtures for plugin unit tests."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from rbd_volume_plugin.config import (
    CommandConfig,
    LoggingConfig,
    PluginConfig,
    RbdConfig,
    ServerConfig,
    VolumeConfig,
)
from rbd_volume_plugin.errors import CommandError
from rbd_volume_plugin.infra import CommandResult, CommandRunner, FilesystemClient, RbdClient
from rbd_volume_plugin.lifecycle import VolumeLifecycle, VolumeNaming

_UNITS = {"K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4}


def _size_bytes(size: str) -> int:
    unit = size[-1].upper()
    if unit in _UNITS:
        return int(size[:-1]) * _UNITS[unit]
    # rbd reads a bare number as megabytes
    return int(size) * _UNITS["M"]


class FakeHost:
    """In-memory stand-in for rbd, mkfs, mount and umount on one host.

    Implements CommandRunner.run, keeping images, mappings and mounts as
    state so lifecycle sequences can be exercised end to end.
    """

    def __init__(self, pool: str = "rbd") -> None:
        self.pool = pool
        self.images: dict[str, int] = {}
        self.mapped: dict[str, str] = {}
        self.mounts: dict[str, str] = {}
        self.trash: list[str] = []
        self.filesystems: dict[str, str] = {}
        self.calls: list[list[str]] = []
        self._next_device = 0

    def commands(self, program: str, subcommand: str | None = None) -> list[list[str]]:
        return [
            c
            for c in self.calls
            if c[0] == program and (subcommand is None or (len(c) > 1 and c[1] == subcommand))
        ]

    async def run(self, program: str, args: list[str], timeout: float) -> CommandResult:
        self.calls.append([program, *args])
        handler = getattr(self, f"_{program}")
        return CommandResult(stdout=handler(args))

    @staticmethod
    def _fail(message: str, exit_code: int) -> None:
        raise CommandError(message, exit_code=exit_code, stderr=message)

    def _rbd(self, args: list[str]) -> str:
        sub = args[0]
        name = args[-1]
        if sub == "showmapped":
            return json.dumps(
                [
                    {
                        "id": str(i),
                        "pool": self.pool,
                        "namespace": "",
                        "name": image,
                        "snap": "-",
                        "device": device,
                    }
                    for i, (image, device) in enumerate(self.mapped.items())
                ]
            )
        if sub == "list":
            return json.dumps(
                [{"image": image, "id": f"id-{image}", "size": size, "format": 2} for image, size in self.images.items()]
            )
        if sub == "create":
            if name in self.images:
                self._fail("rbd: create error: (17) File exists", 17)
            self.images[name] = _size_bytes(args[args.index("--size") + 1])
            return ""
        if sub == "map":
            if name not in self.images:
                self._fail(f"rbd: error opening image {name}: (2) No such file or directory", 2)
            device = f"/dev/rbd{self._next_device}"
            self._next_device += 1
            self.mapped[name] = device
            return device + "\n"
        if sub == "unmap":
            if name not in self.mapped:
                self._fail(f"rbd: {name}: not a mapped image or snapshot", 22)
            del self.mapped[name]
            return ""
        if sub == "trash":
            if name not in self.images:
                self._fail(f"rbd: error opening image {name}: (2) No such file or directory", 2)
            if name in self.mapped:
                self._fail("rbd: image is in use", 16)
            del self.images[name]
            self.trash.append(name)
            return ""
        raise AssertionError(f"unexpected rbd command: {args}")

    def _mkfs(self, args: list[str]) -> str:
        self.filesystems[args[-1]] = args[1]
        return ""

    def _mount(self, args: list[str]) -> str:
        if not args:
            lines = ["proc on /proc type proc (rw,nosuid)"]
            lines += [f"{device} on {path} type xfs (rw,relatime)" for path, device in self.mounts.items()]
            return "\n".join(lines) + "\n"
        device, path = args
        if not Path(path).is_dir():
            self._fail(f"mount: {path}: mount point does not exist.", 32)
        if path in self.mounts:
            self._fail(f"mount: {path}: {device} already mounted.", 32)
        self.mounts[path] = device
        return ""

    def _umount(self, args: list[str]) -> str:
        path = args[0]
        if path not in self.mounts:
            self._fail(f"umount: {path}: not mounted.", 32)
        del self.mounts[path]
        return ""


@pytest.fixture
def command_config() -> CommandConfig:
    """Command settings with no wait between confirmation polls."""
    return CommandConfig(timeout=5.0, mkfs_timeout=5.0, poll_attempts=5, poll_interval=0.0)


@pytest.fixture
def rbd_config() -> RbdConfig:
    return RbdConfig(
        pool="rbd",
        cluster="ceph",
        keyring_user="client.test",
        order="22",
        rbd_options="layering",
        map_options=["--exclusive"],
    )


@pytest.fixture
def plugin_config(
    tmp_path: Path,
    rbd_config: RbdConfig,
    command_config: CommandConfig,
) -> PluginConfig:
    """PluginConfig mounting volumes under tmp_path."""
    return PluginConfig(
        rbd=rbd_config,
        command=command_config,
        volume=VolumeConfig(mount_root=str(tmp_path / "volumes")),
        logging=LoggingConfig(),
        server=ServerConfig(socket_path=str(tmp_path / "rbd.sock")),
    )


@pytest.fixture
def mock_runner() -> AsyncMock:
    """Mock CommandRunner; set run.side_effect per test."""
    runner = AsyncMock(spec=CommandRunner)
    runner.run = AsyncMock(return_value=CommandResult(stdout=""))
    return runner


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost(pool="rbd")


@pytest.fixture
def naming(plugin_config: PluginConfig) -> VolumeNaming:
    return VolumeNaming(plugin_config)


@pytest.fixture
def host_lifecycle(
    plugin_config: PluginConfig,
    naming: VolumeNaming,
    fake_host: FakeHost,
) -> VolumeLifecycle:
    """VolumeLifecycle running real clients against FakeHost."""
    return VolumeLifecycle(
        config=plugin_config,
        naming=naming,
        rbd=RbdClient(plugin_config.rbd, plugin_config.command, runner=fake_host),
        fs=FilesystemClient(plugin_config.command, runner=fake_host),
    )
