"""
Stage Runner
============

Runs one external toolchain command and captures its outcome.

The proof pipeline only talks to the `StageRunner` protocol, so tests can
substitute a fake without nargo or bb installed.

Version: 0.1.0
"""

import asyncio
from pathlib import Path
from typing import Protocol, Sequence

from shared.logging import get_logger
from shared.zk.models import Stage, StageOutcome


logger = get_logger(__name__)

# Bytes of each stream kept in a StageOutcome
MAX_CAPTURE_BYTES = 64 * 1024


class StageRunner(Protocol):
    """Capability to run one pipeline stage."""

    async def run_stage(
        self,
        stage: Stage,
        args: Sequence[str],
        work_dir: Path,
    ) -> StageOutcome: ...


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data[-MAX_CAPTURE_BYTES:].decode(errors="replace")


class SubprocessStageRunner:
    """
    Runs stages as child processes.

    A stage that exceeds `timeout_seconds` is killed and reported as timed
    out. If the awaiting task is cancelled (client went away) the child is
    killed before the cancellation propagates.
    """

    def __init__(self, timeout_seconds: float | None = None):
        self.timeout_seconds = timeout_seconds

    async def run_stage(
        self,
        stage: Stage,
        args: Sequence[str],
        work_dir: Path,
    ) -> StageOutcome:
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=work_dir,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error("zk_stage_spawn_failed", stage=stage.value, command=args[0], error=str(e))
            return StageOutcome.missing(stage, f"{args[0]}: {e.strerror or e}")

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            await self._kill(process)
            logger.warning(
                "zk_stage_timed_out",
                stage=stage.value,
                timeout_seconds=self.timeout_seconds,
            )
            return StageOutcome(
                stage=stage,
                exit_status=process.returncode if process.returncode is not None else -1,
                stderr=f"{stage.value} stage exceeded {self.timeout_seconds}s",
                timed_out=True,
            )
        except asyncio.CancelledError:
            await self._kill(process)
            logger.info("zk_stage_cancelled", stage=stage.value, pid=process.pid)
            raise

        return StageOutcome(
            stage=stage,
            exit_status=process.returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()
