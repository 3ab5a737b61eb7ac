from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class ProgramError(Exception):
    """Canonical error type for instruction processing failures.

    Every failure aborts the whole transaction; the executor turns it into a
    rejected receipt and discards all writes.
    """

    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class DecodeError(ProgramError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("decode_error", reason, details)


class AddressCollision(ProgramError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("address_collision", reason, details)


class AuthorizationMismatch(ProgramError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("authorization_mismatch", reason, details)


class ConsistencyMismatch(ProgramError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("consistency_mismatch", reason, details)


class InsufficientValue(ProgramError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("insufficient_value", reason, details)


class NameTooLong(ProgramError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("name_too_long", reason, details)


class MissingAccount(ProgramError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("missing_account", reason, details)


class ArithmeticOverflow(ProgramError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("arithmetic_overflow", reason, details)


class DerivationError(ProgramError):
    """No off-curve address exists for the seed set within the bump range."""

    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("derivation_exhausted", reason, details)


class RuntimeViolation(ProgramError):
    """Raised by the host when a program breaks an account ownership rule."""

    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("runtime_violation", reason, details)
