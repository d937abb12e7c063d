"""
Unit Tests for the Eligibility Prover
=====================================

Tests for the proof pipeline, its models and the stage runner.

Version: 0.1.0
"""

import asyncio
import base64
import json
import sys
import threading
from pathlib import Path

import pytest
from pydantic import ValidationError

from shared.zk.models import (
    ProofRequest,
    PublicInputs,
    ResultKind,
    Stage,
    StageOutcome,
    VerificationInput,
)
from shared.zk.parser import CIRCUIT_EXECUTION_FAILED, ENVIRONMENT_ERROR_MESSAGE, SUCCESS_MESSAGE
from shared.zk.prover import InsuranceProver
from shared.zk.runner import SubprocessStageRunner
from shared.zk.workspace import WorkspaceAllocator
from tests.conftest import FAKE_PROOF, FakeStageRunner


def make_request(age: int = 20, bmi: int = 220, session_id: str = "session1") -> ProofRequest:
    return ProofRequest(
        input=VerificationInput(age=age, bmi_times_ten=bmi),
        session_id=session_id,
    )


class TestZKModels:
    """Tests for ZK data models."""

    def test_verification_input_bounds(self):
        assert VerificationInput(age=10, bmi_times_ten=185).age == 10
        assert VerificationInput(age=25, bmi_times_ten=249).bmi_times_ten == 249

        with pytest.raises(ValidationError):
            VerificationInput(age=9, bmi_times_ten=220)
        with pytest.raises(ValidationError):
            VerificationInput(age=20, bmi_times_ten=250)

    def test_verification_input_is_frozen(self):
        data = VerificationInput(age=20, bmi_times_ten=220)

        with pytest.raises(ValidationError):
            data.age = 30

    def test_session_id_must_be_path_safe(self):
        with pytest.raises(ValidationError):
            ProofRequest(
                input=VerificationInput(age=20, bmi_times_ten=220),
                session_id="../escape",
            )

    def test_prover_toml(self):
        toml = PublicInputs().to_prover_toml(VerificationInput(age=20, bmi_times_ten=220))

        assert toml == (
            'age = "20"\n'
            'bmi = "220"\n'
            'min_age = "10"\n'
            'max_age = "25"\n'
            'min_bmi = "185"\n'
            'max_bmi = "249"\n'
        )

    def test_stage_outcome_succeeded(self):
        assert StageOutcome(stage=Stage.WITNESS, exit_status=0).succeeded
        assert not StageOutcome(stage=Stage.WITNESS, exit_status=1).succeeded
        assert not StageOutcome(stage=Stage.WITNESS, exit_status=0, timed_out=True).succeeded
        assert not StageOutcome.missing(Stage.PROVING, "bb not found").succeeded


class TestInsuranceProver:
    """Tests for the proof pipeline against a fake toolchain."""

    @pytest.fixture
    def prover(self, prover_settings, fake_runner) -> InsuranceProver:
        return InsuranceProver(prover_settings, runner=fake_runner)

    @pytest.mark.asyncio
    async def test_successful_proof(self, prover, fake_runner):
        result = await prover.prove(make_request())

        assert result.success is True
        assert result.kind == ResultKind.SUCCESS
        assert result.message == SUCCESS_MESSAGE
        assert base64.b64decode(result.proof) == FAKE_PROOF
        assert result.proving_time_ms is not None
        assert fake_runner.stages() == [Stage.WITNESS, Stage.PROVING]

    @pytest.mark.asyncio
    async def test_stage_commands(self, prover, fake_runner):
        await prover.prove(make_request())

        witness, proving = fake_runner.calls
        assert witness["args"] == ["nargo", "execute", "witness"]
        assert proving["args"][:2] == ["bb", "prove"]
        assert "./target/insurance_verifier.json" in proving["args"]
        assert "./target/witness.gz" in proving["args"]

    @pytest.mark.asyncio
    async def test_workspace_holds_circuit_and_inputs(self, prover, fake_runner):
        await prover.prove(make_request(age=18, bmi=201))

        call = fake_runner.calls[0]
        assert 'age = "18"' in call["prover_toml"]
        assert 'bmi = "201"' in call["prover_toml"]
        assert call["work_dir"].name.startswith("zkv-session1-")

    @pytest.mark.asyncio
    async def test_workspace_removed_after_success(self, prover, fake_runner, work_root):
        await prover.prove(make_request())

        assert not fake_runner.calls[0]["work_dir"].exists()
        assert list(work_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_witness_failure_stops_pipeline(self, prover, fake_runner, work_root):
        fake_runner.outcomes[Stage.WITNESS] = StageOutcome(
            stage=Stage.WITNESS,
            exit_status=1,
            stderr="Failed constraint",
        )

        result = await prover.prove(make_request())

        assert result.success is False
        assert result.message == CIRCUIT_EXECUTION_FAILED
        assert result.raw_detail == "Failed constraint"
        assert result.proof is None
        assert fake_runner.stages() == [Stage.WITNESS]
        assert list(work_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_proving_failure(self, prover, fake_runner):
        fake_runner.outcomes[Stage.PROVING] = StageOutcome(stage=Stage.PROVING, exit_status=3)

        result = await prover.prove(make_request())

        assert result.success is False
        assert result.kind == ResultKind.STAGE_FAILURE
        assert result.proof is None

    @pytest.mark.asyncio
    async def test_missing_compiled_circuit(self, prover, fake_runner, circuit_dir):
        (circuit_dir / "target" / "insurance_verifier.json").unlink()

        result = await prover.prove(make_request())

        assert result.success is False
        assert result.kind == ResultKind.ENVIRONMENT_ERROR
        assert result.message == ENVIRONMENT_ERROR_MESSAGE
        assert fake_runner.calls == []

    @pytest.mark.asyncio
    async def test_runner_crash_becomes_internal_error(self, prover_settings, work_root):
        class ExplodingRunner:
            async def run_stage(self, stage, args, work_dir):
                raise RuntimeError("unexpected")

        prover = InsuranceProver(prover_settings, runner=ExplodingRunner())

        result = await prover.prove(make_request())

        assert result.success is False
        assert result.kind == ResultKind.INTERNAL_ERROR
        assert list(work_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_concurrent_sessions_use_distinct_workspaces(self, prover_settings):
        runner = FakeStageRunner(delay=0.05)
        prover = InsuranceProver(prover_settings, runner=runner)

        results = await asyncio.gather(
            prover.prove(make_request(age=11, bmi=190, session_id="alpha")),
            prover.prove(make_request(age=24, bmi=240, session_id="beta")),
        )

        assert all(r.success for r in results)
        witness_calls = [c for c in runner.calls if c["stage"] == Stage.WITNESS]
        by_session = {c["work_dir"].name.split("-")[1]: c for c in witness_calls}
        assert by_session["alpha"]["work_dir"] != by_session["beta"]["work_dir"]
        assert 'age = "11"' in by_session["alpha"]["prover_toml"]
        assert 'age = "24"' in by_session["beta"]["prover_toml"]
        assert runner.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_cancellation_releases_workspace(self, prover_settings, work_root):
        runner = FakeStageRunner(delay=10)
        prover = InsuranceProver(prover_settings, runner=runner)

        task = asyncio.create_task(prover.prove(make_request()))
        while not runner.calls:
            await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert runner.cancelled == 1
        assert list(work_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_proof_saved_when_output_dir_set(self, prover_settings, fake_runner, tmp_path):
        output_dir = tmp_path / "proofs"
        settings = prover_settings.model_copy(update={"proof_output_dir": output_dir})
        prover = InsuranceProver(settings, runner=fake_runner)

        await prover.prove(make_request(session_id="saved"))

        saved = json.loads((output_dir / "proof_saved.json").read_text())
        assert saved["success"] is True
        assert saved["public_inputs"]["min_bmi"] == 185
        assert "raw_detail" not in saved

    @pytest.mark.asyncio
    async def test_proof_saved_off_the_event_loop(self, prover_settings, fake_runner, tmp_path):
        save_threads = []

        class RecordingProver(InsuranceProver):
            def _save_proof(self, session_id, result):
                save_threads.append(threading.get_ident())
                super()._save_proof(session_id, result)

        settings = prover_settings.model_copy(update={"proof_output_dir": tmp_path / "proofs"})
        prover = RecordingProver(settings, runner=fake_runner)

        await prover.prove(make_request(session_id="threaded"))

        assert len(save_threads) == 1
        assert save_threads[0] != threading.get_ident()
        assert (tmp_path / "proofs" / "proof_threaded.json").is_file()


class TestWorkspaceAllocator:
    """Tests for per-session working directories."""

    def test_allocate_and_release(self, tmp_path):
        allocator = WorkspaceAllocator(tmp_path / "root")

        with allocator.allocate("abc") as path:
            assert path.is_dir()
            assert path.parent == tmp_path / "root"
            assert allocator.active == {path}
            (path / "scratch").write_text("x")

        assert not path.exists()
        assert allocator.active == frozenset()

    def test_released_on_error(self, tmp_path):
        allocator = WorkspaceAllocator(tmp_path)

        with pytest.raises(RuntimeError):
            with allocator.allocate("abc") as path:
                raise RuntimeError("stage crashed")

        assert not path.exists()

    def test_same_session_id_gets_distinct_dirs(self, tmp_path):
        allocator = WorkspaceAllocator(tmp_path)

        with allocator.allocate("same") as first, allocator.allocate("same") as second:
            assert first != second


class TestSubprocessStageRunner:
    """Tests for the real subprocess runner using the Python interpreter as a stand-in tool."""

    @pytest.mark.asyncio
    async def test_captures_output_and_exit_status(self, tmp_path: Path):
        runner = SubprocessStageRunner(timeout_seconds=10)
        script = "import sys; print('witness ok'); print('warn', file=sys.stderr); sys.exit(3)"

        outcome = await runner.run_stage(Stage.WITNESS, [sys.executable, "-c", script], tmp_path)

        assert outcome.exit_status == 3
        assert outcome.stdout.strip() == "witness ok"
        assert outcome.stderr.strip() == "warn"
        assert not outcome.succeeded

    @pytest.mark.asyncio
    async def test_runs_in_work_dir(self, tmp_path: Path):
        runner = SubprocessStageRunner(timeout_seconds=10)
        script = "import os; print(os.getcwd())"

        outcome = await runner.run_stage(Stage.WITNESS, [sys.executable, "-c", script], tmp_path)

        assert outcome.succeeded
        assert Path(outcome.stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path: Path):
        runner = SubprocessStageRunner(timeout_seconds=10)

        outcome = await runner.run_stage(
            Stage.PROVING,
            ["definitely-not-a-real-bb-binary"],
            tmp_path,
        )

        assert outcome.tool_missing is True
        assert outcome.exit_status == 127

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path: Path):
        runner = SubprocessStageRunner(timeout_seconds=0.2)

        outcome = await runner.run_stage(
            Stage.PROVING,
            [sys.executable, "-c", "import time; time.sleep(30)"],
            tmp_path,
        )

        assert outcome.timed_out is True
        assert not outcome.succeeded

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, tmp_path: Path):
        runner = SubprocessStageRunner(timeout_seconds=30)
        marker = tmp_path / "finished"
        script = f"import time; time.sleep(2); open({str(marker)!r}, 'w').close()"

        task = asyncio.create_task(
            runner.run_stage(Stage.WITNESS, [sys.executable, "-c", script], tmp_path)
        )
        await asyncio.sleep(0.3)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(2.5)
        assert not marker.exists()
