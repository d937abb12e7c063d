"""
Input Validation
================

Parses and range-checks the integers a client types at the prompts.

Version: 0.1.0
"""

import re
from dataclasses import dataclass
from enum import Enum

from shared.zk.models import MAX_AGE, MAX_BMI, MIN_AGE, MIN_BMI


_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


class InputKind(str, Enum):
    """The two values collected from a client."""

    AGE = "age"
    BMI = "bmi"


@dataclass(frozen=True)
class FieldBounds:
    """Inclusive bounds and prompt text for one input field."""

    minimum: int
    maximum: int
    label: str
    prompt: str

    def contains(self, value: int) -> bool:
        return self.minimum <= value <= self.maximum


BOUNDS: dict[InputKind, FieldBounds] = {
    InputKind.AGE: FieldBounds(
        minimum=MIN_AGE,
        maximum=MAX_AGE,
        label="Age",
        prompt=f"Enter age ({MIN_AGE}-{MAX_AGE}): ",
    ),
    InputKind.BMI: FieldBounds(
        minimum=MIN_BMI,
        maximum=MAX_BMI,
        label="BMI multiplied by 10",
        prompt=f"Enter BMI multiplied by 10 ({MIN_BMI}-{MAX_BMI}): ",
    ),
}


class InputValidationError(ValueError):
    """A client value that cannot be used; the client is asked again."""

    def __init__(self, kind: InputKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class NotANumberError(InputValidationError):
    """The line is not a plain base-10 integer."""

    def __init__(self, kind: InputKind, raw: str):
        bounds = BOUNDS[kind]
        super().__init__(kind, f"Invalid input: {bounds.label} must be a whole number.")
        self.raw = raw


class OutOfRangeError(InputValidationError):
    """The value parsed but lies outside the accepted bounds."""

    def __init__(self, kind: InputKind, value: int):
        bounds = BOUNDS[kind]
        super().__init__(
            kind,
            f"Invalid input: {bounds.label} must be between "
            f"{bounds.minimum} and {bounds.maximum}.",
        )
        self.value = value
        self.minimum = bounds.minimum
        self.maximum = bounds.maximum


def validate(raw_line: str, kind: InputKind) -> int:
    """
    Parse one client line as the given field.

    Surrounding whitespace (including the CRLF sent by telnet) is ignored.
    Anything other than an optionally signed run of ASCII digits is
    rejected, so "1_9", "20.0" and non-ASCII digits do not slip through
    `int()`.

    Args:
        raw_line: Line as received from the client
        kind: Which field is being read

    Returns:
        The validated integer

    Raises:
        NotANumberError: If the line is not a base-10 integer
        OutOfRangeError: If the integer is outside the field bounds
    """
    text = raw_line.strip()
    if not _INTEGER_PATTERN.fullmatch(text):
        raise NotANumberError(kind, text)

    value = int(text)
    if not BOUNDS[kind].contains(value):
        raise OutOfRangeError(kind, value)

    return value
