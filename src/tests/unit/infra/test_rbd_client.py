"""Unit tests for RbdClient."""

import json
from unittest.mock import AsyncMock, call

import pytest

from rbd_volume_plugin.config import CommandConfig, RbdConfig
from rbd_volume_plugin.errors import (
    AttachError,
    CommandError,
    CreateError,
    DetachError,
    OutputValidationError,
    RemoveError,
)
from rbd_volume_plugin.infra.command import CommandResult
from rbd_volume_plugin.infra.rbd import ImageInfo, RbdClient


def _mapped(*entries: tuple[str, str, str]) -> CommandResult:
    """showmapped output for (pool, name, device) triples."""
    return CommandResult(
        stdout=json.dumps(
            [
                {"id": str(i), "pool": pool, "namespace": "", "name": name, "snap": "-", "device": device}
                for i, (pool, name, device) in enumerate(entries)
            ]
        )
    )


SHOWMAPPED = ["showmapped", "--format", "json"]


class TestQueryAttachment:
    """Tests for RbdClient.query_attachment."""

    @pytest.fixture
    def client(
        self, rbd_config: RbdConfig, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> RbdClient:
        return RbdClient(rbd_config, command_config, runner=mock_runner)

    async def test_finds_device_for_pool_and_name(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test the exact (pool, name) match is returned among unrelated entries."""
        mock_runner.run.return_value = _mapped(
            ("rbd", "vol1", "/dev/rbd1"),
            ("other", "vol2", "/dev/rbd2"),
        )

        device = await client.query_attachment("vol1")

        assert device == "/dev/rbd1"
        mock_runner.run.assert_called_once_with("rbd", SHOWMAPPED, timeout=5.0)

    async def test_ignores_same_name_in_other_pool(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test an image of the same name in another pool does not match."""
        mock_runner.run.return_value = _mapped(("other", "vol1", "/dev/rbd2"))

        assert await client.query_attachment("vol1") is None

    async def test_returns_none_when_missing(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        mock_runner.run.return_value = _mapped(("rbd", "vol1", "/dev/rbd1"))

        assert await client.query_attachment("missing") is None

    async def test_first_match_wins(self, client: RbdClient, mock_runner: AsyncMock) -> None:
        mock_runner.run.return_value = _mapped(
            ("rbd", "vol1", "/dev/rbd1"),
            ("rbd", "vol1", "/dev/rbd7"),
        )

        assert await client.query_attachment("vol1") == "/dev/rbd1"

    async def test_empty_output_means_nothing_mapped(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(stdout="")

        assert await client.query_attachment("vol1") is None

    async def test_malformed_output_raises_validation_error(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test entries missing the device field are rejected."""
        mock_runner.run.return_value = CommandResult(
            stdout=json.dumps([{"id": "0", "pool": "rbd", "namespace": "", "name": "vol1", "snap": "-"}])
        )

        with pytest.raises(OutputValidationError):
            await client.query_attachment("vol1")

    async def test_keyed_object_output_raises_validation_error(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test the pre-Nautilus object-keyed format is rejected, not misread."""
        mock_runner.run.return_value = CommandResult(
            stdout=json.dumps({"0": {"pool": "rbd", "name": "vol1", "snap": "-", "device": "/dev/rbd0"}})
        )

        with pytest.raises(OutputValidationError):
            await client.query_attachment("vol1")

    async def test_command_failure_propagates(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        mock_runner.run.side_effect = CommandError("rbd showmapped exited with code 1", exit_code=1)

        with pytest.raises(CommandError):
            await client.query_attachment("vol1")


class TestAttach:
    """Tests for RbdClient.attach."""

    @pytest.fixture
    def client(
        self, rbd_config: RbdConfig, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> RbdClient:
        return RbdClient(rbd_config, command_config, runner=mock_runner)

    async def test_maps_unmapped_image(self, client: RbdClient, mock_runner: AsyncMock) -> None:
        """Test rbd map runs with map options and pool, output trimmed."""
        mock_runner.run.side_effect = [_mapped(), CommandResult(stdout="/dev/rbd3\n")]

        device = await client.attach("vol1")

        assert device == "/dev/rbd3"
        assert mock_runner.run.call_args_list[1] == call(
            "rbd", ["map", "--exclusive", "--pool", "rbd", "vol1"], timeout=5.0
        )

    async def test_already_mapped_returns_existing_device(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test attach is idempotent: no rbd map when already mapped."""
        mock_runner.run.return_value = _mapped(("rbd", "vol1", "/dev/rbd1"))

        first = await client.attach("vol1")
        second = await client.attach("vol1")

        assert first == second == "/dev/rbd1"
        for c in mock_runner.run.call_args_list:
            assert c.args[1] == SHOWMAPPED

    async def test_failed_precheck_still_maps(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test a failing showmapped does not prevent the map attempt."""
        mock_runner.run.side_effect = [
            CommandError("rbd showmapped exited with code 1", exit_code=1),
            CommandResult(stdout="/dev/rbd0\n"),
        ]

        assert await client.attach("vol1") == "/dev/rbd0"

    async def test_map_failure_raises_attach_error_with_code(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        mock_runner.run.side_effect = [
            _mapped(),
            CommandError("rbd map exited with code 16: image is locked", exit_code=16),
        ]

        with pytest.raises(AttachError) as exc_info:
            await client.attach("vol1")

        assert exc_info.value.exit_code == 16
        assert "rbd map vol1 failed with code 16" in exc_info.value.message

    async def test_map_options_from_config(
        self, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> None:
        config = RbdConfig(pool="volumes", map_options="--exclusive;--options;noshare")
        client = RbdClient(config, command_config, runner=mock_runner)
        mock_runner.run.side_effect = [_mapped(), CommandResult(stdout="/dev/rbd0")]

        await client.attach("vol1")

        assert mock_runner.run.call_args_list[1].args[1] == [
            "map",
            "--exclusive",
            "--options",
            "noshare",
            "--pool",
            "volumes",
            "vol1",
        ]


class TestDetach:
    """Tests for RbdClient.detach."""

    @pytest.fixture
    def client(
        self, rbd_config: RbdConfig, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> RbdClient:
        return RbdClient(rbd_config, command_config, runner=mock_runner)

    async def test_not_mapped_is_noop(self, client: RbdClient, mock_runner: AsyncMock) -> None:
        mock_runner.run.return_value = _mapped()

        await client.detach("vol1")

        mock_runner.run.assert_called_once_with("rbd", SHOWMAPPED, timeout=5.0)

    async def test_unmaps_and_waits_for_confirmation(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test unmap, then polling until showmapped no longer lists the image."""
        mock_runner.run.side_effect = [
            _mapped(("rbd", "vol1", "/dev/rbd1")),
            CommandResult(stdout=""),
            _mapped(("rbd", "vol1", "/dev/rbd1")),
            _mapped(),
        ]

        await client.detach("vol1")

        assert mock_runner.run.call_args_list[1] == call(
            "rbd", ["unmap", "--pool", "rbd", "vol1"], timeout=5.0
        )
        assert mock_runner.run.call_count == 4

    async def test_poll_exhaustion_does_not_raise(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test still-mapped after 5 polls returns normally: unmap succeeded."""
        still_mapped = _mapped(("rbd", "vol1", "/dev/rbd1"))
        mock_runner.run.side_effect = [still_mapped, CommandResult(stdout="")] + [still_mapped] * 5

        await client.detach("vol1")

        # pre-check + unmap + 5 polls
        assert mock_runner.run.call_count == 7

    async def test_failing_confirmation_check_does_not_raise(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test showmapped failing after a successful unmap keeps polling."""
        mock_runner.run.side_effect = [
            _mapped(("rbd", "vol1", "/dev/rbd1")),
            CommandResult(stdout=""),
            CommandError("rbd showmapped exited with code 1", exit_code=1),
            CommandResult(stdout="not json"),
            _mapped(),
        ]

        await client.detach("vol1")

        assert mock_runner.run.call_count == 5

    async def test_confirmation_check_always_failing(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test an unconfirmable unmap still returns normally."""
        failure = CommandError("rbd showmapped exited with code 1", exit_code=1)
        mock_runner.run.side_effect = [
            _mapped(("rbd", "vol1", "/dev/rbd1")),
            CommandResult(stdout=""),
        ] + [failure] * 5

        await client.detach("vol1")

        assert mock_runner.run.call_count == 7

    async def test_failed_precheck_still_unmaps(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        mock_runner.run.side_effect = [
            CommandResult(stdout="not json"),
            CommandResult(stdout=""),
            _mapped(),
        ]

        await client.detach("vol1")

        assert mock_runner.run.call_args_list[1].args[1] == ["unmap", "--pool", "rbd", "vol1"]

    async def test_unmap_failure_raises_detach_error(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        mock_runner.run.side_effect = [
            _mapped(("rbd", "vol1", "/dev/rbd1")),
            CommandError("rbd unmap exited with code 16: device busy", exit_code=16),
        ]

        with pytest.raises(DetachError) as exc_info:
            await client.detach("vol1")

        assert exc_info.value.exit_code == 16


class TestListAndInfo:
    """Tests for RbdClient.list and RbdClient.info."""

    @pytest.fixture
    def client(
        self, rbd_config: RbdConfig, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> RbdClient:
        return RbdClient(rbd_config, command_config, runner=mock_runner)

    async def test_list_returns_validated_records(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        records = [
            {"image": "vol1", "id": "1", "size": 2048, "format": 2},
            {"image": "vol2", "id": "2", "size": 4096, "format": 2, "lock_type": "exclusive"},
        ]
        mock_runner.run.return_value = CommandResult(stdout=json.dumps(records))

        result = await client.list()

        assert result == [
            ImageInfo(image="vol1", id="1", size=2048, format=2),
            ImageInfo(image="vol2", id="2", size=4096, format=2),
        ]
        mock_runner.run.assert_called_once_with(
            "rbd", ["list", "--pool", "rbd", "--long", "--format", "json"], timeout=5.0
        )

    async def test_list_missing_size_raises(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        """Test a record without size fails the whole list, not a partial result."""
        mock_runner.run.return_value = CommandResult(
            stdout=json.dumps(
                [
                    {"image": "vol1", "id": "1", "size": 2048, "format": 2},
                    {"image": "vol2", "id": "2", "format": 2},
                ]
            )
        )

        with pytest.raises(OutputValidationError):
            await client.list()

    async def test_list_command_failure_propagates(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        mock_runner.run.side_effect = CommandError("rbd list exited with code 2", exit_code=2)

        with pytest.raises(CommandError):
            await client.list()

    async def test_info_skips_snapshots(self, client: RbdClient, mock_runner: AsyncMock) -> None:
        mock_runner.run.return_value = CommandResult(
            stdout=json.dumps(
                [
                    {"image": "vol1", "id": "1", "size": 1024, "format": 2, "snapshot": "snap1"},
                    {"image": "vol1", "id": "1", "size": 2048, "format": 2},
                ]
            )
        )

        info = await client.info("vol1")

        assert info is not None
        assert info.size == 2048

    async def test_info_missing_returns_none(
        self, client: RbdClient, mock_runner: AsyncMock
    ) -> None:
        mock_runner.run.return_value = CommandResult(stdout="[]")

        assert await client.info("vol1") is None


class TestCreateAndRemove:
    """Tests for RbdClient.create and RbdClient.remove."""

    async def test_create_args_with_features(
        self, rbd_config: RbdConfig, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> None:
        client = RbdClient(rbd_config, command_config, runner=mock_runner)

        assert await client.create("vol1", "1G") is True

        mock_runner.run.assert_called_once_with(
            "rbd",
            [
                "create",
                "--order",
                "22",
                "--pool",
                "rbd",
                "--size",
                "1G",
                "--image-feature",
                "layering",
                "vol1",
            ],
            timeout=5.0,
        )

    async def test_create_without_features(
        self, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> None:
        client = RbdClient(RbdConfig(rbd_options=""), command_config, runner=mock_runner)

        await client.create("vol1", "200M")

        args = mock_runner.run.call_args.args[1]
        assert "--image-feature" not in args
        assert args[-1] == "vol1"

    async def test_create_failure_raises_create_error(
        self, rbd_config: RbdConfig, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> None:
        client = RbdClient(rbd_config, command_config, runner=mock_runner)
        mock_runner.run.side_effect = CommandError("exists", exit_code=17)

        with pytest.raises(CreateError) as exc_info:
            await client.create("vol1", "1G")

        assert exc_info.value.exit_code == 17

    async def test_remove_moves_to_trash(
        self, rbd_config: RbdConfig, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> None:
        client = RbdClient(rbd_config, command_config, runner=mock_runner)

        await client.remove("vol1")

        mock_runner.run.assert_called_once_with(
            "rbd", ["trash", "move", "--pool", "rbd", "vol1"], timeout=5.0
        )

    async def test_remove_failure_raises_remove_error(
        self, rbd_config: RbdConfig, command_config: CommandConfig, mock_runner: AsyncMock
    ) -> None:
        client = RbdClient(rbd_config, command_config, runner=mock_runner)
        mock_runner.run.side_effect = CommandError("no such image", exit_code=2)

        with pytest.raises(RemoveError):
            await client.remove("vol1")
