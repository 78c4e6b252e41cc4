from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class AnalysisOutcome(Generic[T]):
    """Result of one analysis operation.

    An unavailable outcome still carries a usable default value, so callers
    render it the same way; ``status`` tells a degraded result apart from
    "the model legitimately found nothing".
    """

    value: T
    status: OutcomeStatus = OutcomeStatus.OK
    reason: str = ""

    @classmethod
    def ok(cls, value: T) -> "AnalysisOutcome[T]":
        return cls(value=value)

    @classmethod
    def unavailable(cls, default: T, reason: str) -> "AnalysisOutcome[T]":
        return cls(value=default, status=OutcomeStatus.UNAVAILABLE, reason=reason)

    @property
    def available(self) -> bool:
        return self.status is OutcomeStatus.OK
