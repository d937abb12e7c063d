"""
Wire Protocol
=============

Text exchanged with clients over the line-oriented TCP protocol.
"""

from shared.zk.models import ProofResult
from shared.zk.validator import BOUNDS, InputKind


BANNER = "ZK Insurance Verifier Server\n============================\n"
GENERATING = "Generating proof...\n"
BUSY = "Server busy: too many concurrent sessions. Please try again later.\n"
QUEUED = "Server busy: waiting for a free slot...\n"
FAREWELL = "\nConnection will close. Thanks for using ZK Insurance Verifier!\n"

PROOF_PREVIEW_CHARS = 50


def prompt(kind: InputKind) -> str:
    return BOUNDS[kind].prompt


def greeting() -> str:
    return BANNER + prompt(InputKind.AGE)


def retry(message: str, kind: InputKind) -> str:
    """Error line followed by the prompt for the same field."""
    return f"{message}\n{prompt(kind)}"


def format_response(result: ProofResult) -> str:
    """
    Render the final response block.

    Successful proofs also get a short proof preview and the public ranges
    the proof was checked against.
    """
    lines = [
        "",
        "=== PROOF RESPONSE ===",
        f"Success: {'true' if result.success else 'false'}",
        f"Message: {result.message}",
    ]

    if result.success:
        if result.proof:
            lines += ["", f"Proof (Base64): {result.proof[:PROOF_PREVIEW_CHARS]}..."]
        public = result.public_inputs
        lines += [
            "",
            f"Age Range: {public.min_age} - {public.max_age}",
            f"BMI Range: {public.min_bmi / 10:.1f} - {public.max_bmi / 10:.1f}",
        ]

    return "\n".join(lines) + "\n" + FAREWELL
