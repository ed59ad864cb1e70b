from dataclasses import dataclass


@dataclass(frozen=True)
class DeductionResult:
    """Outcome of a token deduction attempt."""

    success: bool
    remaining_tokens: int | None = None
    error: str | None = None
