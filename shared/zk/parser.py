"""
Result Interpretation
=====================

Turns captured toolchain outcomes into the ProofResult shown to clients.

Three situations are kept apart:
- the toolchain is missing or broken (a deployment defect, logged as error)
- the toolchain ran and rejected the inputs or failed a stage
- the proof was produced

Version: 0.1.0
"""

from shared.logging import get_logger
from shared.zk.models import ProofResult, ResultKind, Stage, StageOutcome


logger = get_logger(__name__)


SUCCESS_MESSAGE = "Proof generated successfully! The user is eligible for insurance discount."
CIRCUIT_EXECUTION_FAILED = (
    "Circuit execution failed. Likely the inputs don't satisfy the constraints."
)
PROOF_SYNTHESIS_FAILED = "Proof synthesis failed. No proof was generated."
TIMEOUT_MESSAGE = "Proof generation timed out. Please try again later."
ENVIRONMENT_ERROR_MESSAGE = (
    "Proof service is not available right now (prover toolchain unavailable). "
    "Please contact the operator."
)
INTERNAL_ERROR_MESSAGE = "Internal error while generating the proof."

# Shell / loader exit codes for "cannot execute" and "not found"
_MISSING_EXIT_CODES = {126, 127}

_MISSING_MARKERS = (
    "command not found",
    "no such file or directory",
    "permission denied",
    "cannot open shared object",
)


def _is_environment_failure(outcome: StageOutcome) -> bool:
    if outcome.tool_missing or outcome.exit_status in _MISSING_EXIT_CODES:
        return True
    stderr = outcome.stderr.lower()
    return any(marker in stderr for marker in _MISSING_MARKERS)


def _is_constraint_failure(outcome: StageOutcome) -> bool:
    return outcome.stage == Stage.WITNESS and "constraint" in outcome.stderr.lower()


def _failure(outcome: StageOutcome) -> ProofResult:
    detail = outcome.stderr.strip() or outcome.stdout.strip() or None

    if _is_environment_failure(outcome):
        logger.error(
            "zk_prover_environment_error",
            stage=outcome.stage.value,
            exit_status=outcome.exit_status,
            detail=detail,
        )
        return ProofResult(
            success=False,
            message=ENVIRONMENT_ERROR_MESSAGE,
            raw_detail=detail,
            kind=ResultKind.ENVIRONMENT_ERROR,
        )

    if outcome.timed_out:
        return ProofResult(
            success=False,
            message=TIMEOUT_MESSAGE,
            raw_detail=detail,
            kind=ResultKind.TIMEOUT,
        )

    if outcome.stage == Stage.WITNESS:
        kind = (
            ResultKind.CONSTRAINT_FAILURE
            if _is_constraint_failure(outcome)
            else ResultKind.STAGE_FAILURE
        )
        message = CIRCUIT_EXECUTION_FAILED
    else:
        kind = ResultKind.STAGE_FAILURE
        message = PROOF_SYNTHESIS_FAILED

    logger.warning(
        "zk_stage_failed",
        stage=outcome.stage.value,
        exit_status=outcome.exit_status,
        kind=kind.value,
        detail=detail,
    )
    return ProofResult(success=False, message=message, raw_detail=detail, kind=kind)


def interpret(*outcomes: StageOutcome) -> ProofResult:
    """
    Derive the result of a proof attempt from its stage outcomes.

    The first failing stage decides the result. A success needs a
    successful proving stage; a lone successful witness stage means the
    pipeline stopped early and is a caller error.

    Args:
        *outcomes: Stage outcomes in execution order

    Returns:
        ProofResult with one of the fixed client messages

    Raises:
        ValueError: If no outcomes are given or proving never ran
    """
    if not outcomes:
        raise ValueError("interpret() needs at least one stage outcome")

    for outcome in outcomes:
        if not outcome.succeeded:
            return _failure(outcome)

    if outcomes[-1].stage != Stage.PROVING:
        raise ValueError("All stages succeeded but no proving stage outcome was given")

    return ProofResult(success=True, message=SUCCESS_MESSAGE, kind=ResultKind.SUCCESS)


def internal_error(detail: str) -> ProofResult:
    """Result for an unexpected exception inside the pipeline."""
    return ProofResult(
        success=False,
        message=INTERNAL_ERROR_MESSAGE,
        raw_detail=detail,
        kind=ResultKind.INTERNAL_ERROR,
    )
