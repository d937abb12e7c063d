"""
Eligibility Proof Generation
============================

Drives the Noir toolchain to prove that an age and a BMI lie inside the
insurance discount ranges without revealing them.

Two external stages run per request, each in a session-scoped copy of the
circuit project:
    1. `nargo execute` solves the circuit for Prover.toml and writes a witness
    2. `bb prove` synthesizes a proof from the compiled circuit and the witness

Version: 0.1.0
"""

import asyncio
import base64
import shutil
import time
from pathlib import Path

from shared.config import ProverSettings, get_settings
from shared.logging import get_logger
from shared.zk.models import (
    ProofRequest,
    ProofResult,
    PublicInputs,
    Stage,
    StageOutcome,
    VerificationInput,
)
from shared.zk.parser import internal_error, interpret
from shared.zk.runner import StageRunner, SubprocessStageRunner
from shared.zk.workspace import WorkspaceAllocator


logger = get_logger(__name__)

WITNESS_NAME = "witness"


class InsuranceProver:
    """
    Proof pipeline for the insurance eligibility circuit.

    Usage:
        prover = InsuranceProver()

        result = await prover.prove(
            ProofRequest(
                input=VerificationInput(age=20, bmi_times_ten=220),
                session_id="3f2a9c",
            )
        )
    """

    def __init__(
        self,
        settings: ProverSettings | None = None,
        runner: StageRunner | None = None,
        workspaces: WorkspaceAllocator | None = None,
    ):
        """
        Initialize the prover.

        Args:
            settings: Toolchain configuration. Defaults to the global settings.
            runner: Stage runner. Defaults to real subprocesses.
            workspaces: Allocator for per-session working directories.
        """
        self.settings = settings or get_settings().prover
        self.runner = runner or SubprocessStageRunner(self.settings.timeout_seconds)
        self.workspaces = workspaces or WorkspaceAllocator(self.settings.work_root)
        self.public_inputs = PublicInputs()
        self._validate_setup()

    def _validate_setup(self) -> None:
        """Warn early when the circuit is not where we expect it."""
        problem = self._check_environment()
        if problem:
            logger.warning("zk_circuit_not_ready", problem=problem)

    def _check_environment(self) -> str | None:
        circuit_dir = self.settings.circuit_dir
        if not (circuit_dir / "Nargo.toml").is_file():
            return f"Circuit project not found: {circuit_dir}"
        if not (circuit_dir / "src").is_dir():
            return f"Circuit sources not found: {circuit_dir / 'src'}"
        if not self.settings.compiled_circuit.is_file():
            return f"Compiled circuit not found: {self.settings.compiled_circuit}"
        return None

    def witness_command(self) -> list[str]:
        return [self.settings.nargo_binary, "execute", WITNESS_NAME]

    def proving_command(self) -> list[str]:
        name = self.settings.circuit_name
        return [
            self.settings.bb_binary,
            "prove",
            "-b",
            f"./target/{name}.json",
            "-w",
            f"./target/{WITNESS_NAME}.gz",
            "-o",
            "./target/proof",
        ]

    def _prepare_workspace(self, work_dir: Path, request: VerificationInput) -> None:
        """Copy the circuit project and write this session's Prover.toml."""
        circuit_dir = self.settings.circuit_dir

        shutil.copy2(circuit_dir / "Nargo.toml", work_dir / "Nargo.toml")
        shutil.copytree(circuit_dir / "src", work_dir / "src")

        target_dir = work_dir / "target"
        target_dir.mkdir()
        shutil.copy2(self.settings.compiled_circuit, target_dir / self.settings.compiled_circuit.name)

        (work_dir / "Prover.toml").write_text(self.public_inputs.to_prover_toml(request))

    @staticmethod
    def _read_proof(work_dir: Path) -> str | None:
        """Return the proof artifact as base64, if bb left one behind."""
        proof_path = work_dir / "target" / "proof"
        # Newer bb releases treat -o as an output directory
        if proof_path.is_dir():
            proof_path = proof_path / "proof"
        if not proof_path.is_file():
            return None
        return base64.b64encode(proof_path.read_bytes()).decode()

    def _save_proof(self, session_id: str, result: ProofResult) -> None:
        output_dir = self.settings.proof_output_dir
        if output_dir is None:
            return
        path = output_dir / f"proof_{session_id}.json"
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(result.model_dump_json(indent=2, exclude={"raw_detail"}))
        except OSError as e:
            logger.warning("zk_proof_save_failed", path=str(path), error=str(e))
            return
        logger.info("zk_proof_saved", path=str(path))

    async def prove(self, request: ProofRequest) -> ProofResult:
        """
        Generate an eligibility proof.

        Never raises for toolchain problems: every failure, including a
        crash of either stage or a broken environment, comes back as a
        ProofResult with success=False. Cancellation propagates after the
        running stage has been killed and the workspace removed.

        Args:
            request: Validated inputs namespaced by session id

        Returns:
            ProofResult describing the attempt
        """
        problem = self._check_environment()
        if problem:
            return interpret(StageOutcome.missing(Stage.WITNESS, problem))

        start_time = time.time()
        try:
            with self.workspaces.allocate(request.session_id) as work_dir:
                result = await self._run_pipeline(request, work_dir)
        except Exception as e:
            logger.exception("zk_pipeline_crashed", error=str(e))
            return internal_error(str(e))

        result = result.model_copy(
            update={"proving_time_ms": int((time.time() - start_time) * 1000)}
        )

        if result.success:
            logger.info(
                "zk_proof_generated",
                circuit=self.settings.circuit_name,
                proving_time_ms=result.proving_time_ms,
            )
            await asyncio.to_thread(self._save_proof, request.session_id, result)

        return result

    async def _run_pipeline(self, request: ProofRequest, work_dir: Path) -> ProofResult:
        self._prepare_workspace(work_dir, request.input)

        witness = await self.runner.run_stage(Stage.WITNESS, self.witness_command(), work_dir)
        if not witness.succeeded:
            return interpret(witness)

        proving = await self.runner.run_stage(Stage.PROVING, self.proving_command(), work_dir)
        result = interpret(witness, proving)

        if result.success:
            result = result.model_copy(update={"proof": self._read_proof(work_dir)})

        return result
