from __future__ import annotations

import enum
from typing import Optional


class InfeasibilityReason(str, enum.Enum):
    INSUFFICIENT_CAPACITY = "insufficient_capacity"
    NO_TWO_CYCLE_FREE_ASSIGNMENT = "no_two_cycle_free_assignment"
    DUPLICATE_PARTICIPANTS = "duplicate_participants"


class DrawError(RuntimeError):
    pass


class InvalidRuleError(DrawError):
    pass


class InfeasibleError(DrawError):
    def __init__(self, reason: InfeasibilityReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class AlreadyCompletedError(DrawError):
    pass


class AlgorithmExhaustedError(DrawError):
    """Raised when generation runs out of attempts or time on a certified instance.

    Carries enough context for an operator to reproduce the situation without
    exposing any partial assignment.
    """

    def __init__(
        self,
        message: str,
        participant_count: int,
        rule_count: int,
        attempts: int,
        group_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.participant_count = participant_count
        self.rule_count = rule_count
        self.attempts = attempts
        self.group_id = group_id


class GroupNotFoundError(DrawError):
    pass


class InvalidBudgetError(DrawError):
    pass


class DrawInProgressError(DrawError):
    pass


class DrawNotCompletedError(DrawError):
    pass


class NotParticipantError(DrawError):
    pass


class ParticipantError(DrawError):
    pass
