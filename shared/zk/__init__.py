"""
ZK Eligibility Proof Module
===========================

Input validation, the Noir proof pipeline and result interpretation for
the insurance discount eligibility circuit.

Usage:
    from shared.zk import InputKind, InsuranceProver, ProofRequest, VerificationInput, validate

    age = validate("20", InputKind.AGE)
    bmi = validate("220", InputKind.BMI)

    prover = InsuranceProver()
    result = await prover.prove(
        ProofRequest(
            input=VerificationInput(age=age, bmi_times_ten=bmi),
            session_id="3f2a9c",
        )
    )

Version: 0.1.0
"""

from shared.zk.models import (
    ProofRequest,
    ProofResult,
    PublicInputs,
    ResultKind,
    Stage,
    StageOutcome,
    VerificationInput,
)
from shared.zk.parser import interpret
from shared.zk.prover import InsuranceProver
from shared.zk.runner import StageRunner, SubprocessStageRunner
from shared.zk.validator import (
    BOUNDS,
    InputKind,
    InputValidationError,
    NotANumberError,
    OutOfRangeError,
    validate,
)
from shared.zk.workspace import WorkspaceAllocator


__all__ = [
    # Pipeline
    "InsuranceProver",
    "StageRunner",
    "SubprocessStageRunner",
    "WorkspaceAllocator",
    "interpret",
    # Validation
    "BOUNDS",
    "InputKind",
    "InputValidationError",
    "NotANumberError",
    "OutOfRangeError",
    "validate",
    # Models
    "ProofRequest",
    "ProofResult",
    "PublicInputs",
    "ResultKind",
    "Stage",
    "StageOutcome",
    "VerificationInput",
]
