"""Async external command runner.

Every rbd, mkfs, mount and umount invocation goes through CommandRunner so
timeouts, error wrapping and metrics are handled in one place. No retries
happen here; callers decide whether to poll or give up.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass

from rbd_volume_plugin.errors import CommandError
from rbd_volume_plugin.logging_schema import LogEvent
from rbd_volume_plugin.metrics import PLUGIN_COMMAND_DURATION, PLUGIN_COMMAND_ERRORS

logger = logging.getLogger(__name__)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a successful command."""

    stdout: str
    stderr: str = ""


class CommandRunner:
    """Runs external programs as asyncio subprocesses."""

    async def run(
        self,
        program: str,
        args: list[str],
        timeout: float,
    ) -> CommandResult:
        """Run program with args and return its output.

        Raises:
            CommandError: On non-zero exit, timeout, or spawn failure.
        """
        cmdline = " ".join([program, *args])
        started = time.monotonic()
        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    program,
                    *args,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                PLUGIN_COMMAND_ERRORS.labels(program=program, error_type="spawn").inc()
                raise CommandError(f"{cmdline}: {e}") from e

            try:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                await _kill(proc)
                PLUGIN_COMMAND_ERRORS.labels(program=program, error_type="timeout").inc()
                logger.warning(
                    "Command timed out",
                    extra={"event": LogEvent.COMMAND_TIMEOUT, "command": cmdline, "timeout": timeout},
                )
                raise CommandError(f"{cmdline} timed out after {timeout:g}s") from None
            except BaseException:
                # Cancelled request: the child must not outlive it
                await _kill(proc)
                raise
        finally:
            PLUGIN_COMMAND_DURATION.labels(program=program).observe(time.monotonic() - started)

        out = stdout.decode(errors="replace")
        err = stderr.decode(errors="replace")

        if proc.returncode != 0:
            PLUGIN_COMMAND_ERRORS.labels(program=program, error_type="exit_code").inc()
            logger.error(
                "Command failed",
                extra={
                    "event": LogEvent.COMMAND_FAILED,
                    "command": cmdline,
                    "exit_code": proc.returncode,
                    "stderr": err.strip(),
                },
            )
            detail = err.strip() or out.strip() or "no output"
            raise CommandError(
                f"{cmdline} exited with code {proc.returncode}: {detail}",
                exit_code=proc.returncode,
                stderr=err,
            )

        if err:
            logger.debug("%s stderr: %s", program, err.strip())

        return CommandResult(stdout=out, stderr=err)
