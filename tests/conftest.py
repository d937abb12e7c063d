"""
Test Configuration
==================

Pytest fixtures for the verifier tests.
"""

import asyncio
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from typing import Any, Sequence

import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "testing"

from services.verifier.context import ServiceContext  # noqa: E402
from services.verifier.server import VerifierServer  # noqa: E402
from shared.config import ProverSettings, ServerSettings, Settings  # noqa: E402
from shared.zk.models import Stage, StageOutcome  # noqa: E402


FAKE_PROOF = b"fake-barretenberg-proof-bytes" * 4


class FakeStageRunner:
    """
    Stage runner that never spawns a process.

    Outcomes default to success; set `outcomes[stage]` to change one.
    A successful proving stage leaves a proof file behind like bb does.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.outcomes: dict[Stage, StageOutcome] = {}
        self.calls: list[dict[str, Any]] = []
        self.cancelled = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def run_stage(
        self,
        stage: Stage,
        args: Sequence[str],
        work_dir: Path,
    ) -> StageOutcome:
        prover_toml = work_dir / "Prover.toml"
        self.calls.append(
            {
                "stage": stage,
                "args": list(args),
                "work_dir": work_dir,
                "prover_toml": prover_toml.read_text() if prover_toml.exists() else None,
            }
        )

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.in_flight -= 1

        outcome = self.outcomes.get(stage, StageOutcome(stage=stage, exit_status=0))
        if stage == Stage.PROVING and outcome.succeeded:
            (work_dir / "target" / "proof").write_bytes(FAKE_PROOF)
        return outcome

    def stages(self) -> list[Stage]:
        return [call["stage"] for call in self.calls]


@pytest.fixture
def circuit_dir(tmp_path: Path) -> Path:
    """A minimal Noir project with a 'compiled' artifact."""
    root = tmp_path / "noir-circuit"
    (root / "src").mkdir(parents=True)
    (root / "target").mkdir()
    (root / "Nargo.toml").write_text(
        '[package]\nname = "insurance_verifier"\ntype = "bin"\n'
    )
    (root / "src" / "main.nr").write_text("fn main(age: u32, bmi: u32) {}\n")
    (root / "target" / "insurance_verifier.json").write_text('{"bytecode": "H4sIAAAA"}')
    return root


@pytest.fixture
def work_root(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def prover_settings(circuit_dir: Path, work_root: Path) -> ProverSettings:
    return ProverSettings(
        circuit_dir=circuit_dir,
        work_root=work_root,
        timeout_seconds=5,
    )


@pytest.fixture
def settings(prover_settings: ProverSettings) -> Settings:
    return Settings(
        environment="testing",
        server=ServerSettings(host="127.0.0.1", port=0, max_sessions=4),
        prover=prover_settings,
    )


@pytest.fixture
def fake_runner() -> FakeStageRunner:
    return FakeStageRunner()


@pytest_asyncio.fixture
async def start_server(
    settings: Settings,
    fake_runner: FakeStageRunner,
) -> AsyncGenerator[Callable[..., Awaitable[VerifierServer]], None]:
    """Factory starting verifiers on an ephemeral port; server overrides as kwargs."""
    servers: list[VerifierServer] = []

    async def _start(**server_overrides: Any) -> VerifierServer:
        server_settings = settings.server.model_copy(update=server_overrides)
        context = ServiceContext.from_settings(
            settings.model_copy(update={"server": server_settings}),
            runner=fake_runner,
        )
        server = VerifierServer(context)
        await server.start()
        servers.append(server)
        return server

    yield _start

    for server in servers:
        await server.close()


async def talk(port: int, payload: str, half_close: bool = False, timeout: float = 5.0) -> str:
    """Send `payload` to a verifier and return everything it writes until it hangs up."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        writer.write(payload.encode())
        await writer.drain()
        if half_close:
            writer.write_eof()
        data = await asyncio.wait_for(reader.read(), timeout=timeout)
    finally:
        writer.close()
        await writer.wait_closed()
    return data.decode()


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll until `predicate()` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)
