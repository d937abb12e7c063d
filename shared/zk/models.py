"""
ZK Proof Data Models
====================

Pydantic models for the insurance eligibility proof pipeline.

Version: 0.1.0
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# Public range bounds baked into the circuit (BMI is scaled by 10)
MIN_AGE = 10
MAX_AGE = 25
MIN_BMI = 185
MAX_BMI = 249


class Stage(str, Enum):
    """External toolchain invocations that make up one proof."""

    WITNESS = "witness"
    PROVING = "proving"


class ResultKind(str, Enum):
    """Classification of a finished proof attempt."""

    SUCCESS = "success"
    CONSTRAINT_FAILURE = "constraint_failure"
    STAGE_FAILURE = "stage_failure"
    TIMEOUT = "timeout"
    ENVIRONMENT_ERROR = "environment_error"
    INTERNAL_ERROR = "internal_error"


class VerificationInput(BaseModel):
    """
    The two private values a client proves are in range.

    Only built from values that already passed the validator, so an
    instance is never partially valid.
    """

    model_config = ConfigDict(frozen=True)

    age: int = Field(..., ge=MIN_AGE, le=MAX_AGE)
    bmi_times_ten: int = Field(..., ge=MIN_BMI, le=MAX_BMI)


class ProofRequest(BaseModel):
    """Verification input namespaced by the owning session."""

    model_config = ConfigDict(frozen=True)

    input: VerificationInput
    session_id: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9_-]+$")


class StageOutcome(BaseModel):
    """Captured result of one external process invocation."""

    model_config = ConfigDict(frozen=True)

    stage: Stage
    exit_status: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    tool_missing: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0 and not self.timed_out and not self.tool_missing

    @classmethod
    def missing(cls, stage: Stage, detail: str) -> "StageOutcome":
        """Outcome for a stage that could not start because the environment is broken."""
        return cls(stage=stage, exit_status=127, stderr=detail, tool_missing=True)


class PublicInputs(BaseModel):
    """Public parameters of the eligibility circuit."""

    min_age: int = MIN_AGE
    max_age: int = MAX_AGE
    min_bmi: int = MIN_BMI
    max_bmi: int = MAX_BMI

    def to_prover_toml(self, request: VerificationInput) -> str:
        """Render the Prover.toml document read by `nargo execute`."""
        values = {
            "age": request.age,
            "bmi": request.bmi_times_ten,
            "min_age": self.min_age,
            "max_age": self.max_age,
            "min_bmi": self.min_bmi,
            "max_bmi": self.max_bmi,
        }
        return "".join(f'{key} = "{value}"\n' for key, value in values.items())


class ProofResult(BaseModel):
    """
    Outcome of one proof attempt.

    This is the only entity that is rendered back to the client. `message`
    comes from a fixed set of texts; toolchain diagnostics stay in
    `raw_detail`, which is logged but never sent over the wire.
    """

    success: bool
    message: str
    raw_detail: str | None = None
    kind: ResultKind
    proof: str | None = Field(default=None, description="Base64 encoded proof artifact")
    public_inputs: PublicInputs = Field(default_factory=PublicInputs)
    proving_time_ms: int | None = Field(default=None, ge=0)
