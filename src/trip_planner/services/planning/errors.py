"""Planning error taxonomy."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class PlannerErrorCode(str, Enum):
    DAILY_LIMIT_EXCEEDED = "dailyLimitExceeded"
    CUSTOM_LIMIT_EXCEEDED = "customLimitExceeded"
    NEED_MORE_DAYS = "needMoreDays"
    SEGMENT_TOO_FAR = "segmentTooFar"
    EXTERNAL_API = "externalApi"


class PlannerError(Exception):
    """A planning request cannot be satisfied. Never retried by the planner."""

    code: PlannerErrorCode = PlannerErrorCode.EXTERNAL_API

    def __init__(self, details: str, *, code: Optional[PlannerErrorCode] = None, **context: Any) -> None:
        super().__init__(details)
        if code is not None:
            self.code = code
        self.details = details
        self.context = context


class SolverError(PlannerError):
    """Invalid solver input: empty legs, too many waypoints or unusable matrix cells."""

    code = PlannerErrorCode.SEGMENT_TOO_FAR


class PartitionError(PlannerError):
    """The ordered legs cannot be split into days under the constraints."""


class PlanningTimeoutError(PlannerError):
    """The request deadline passed while waiting on upstream calls."""

    code = PlannerErrorCode.EXTERNAL_API


class InternalPlannerError(RuntimeError):
    """A planning invariant was violated. Indicates a programming error."""
