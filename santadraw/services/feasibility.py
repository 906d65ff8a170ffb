from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Set, Union

from loguru import logger

from santadraw.services.errors import InfeasibilityReason, InfeasibleError
from santadraw.services.exclusions import ExclusionGraph, ParticipantId
from santadraw.services.matching import maximum_matching

MIN_PARTICIPANTS = 3
DEFAULT_SEARCH_BUDGET = 5000

MESSAGES = {
    "too_few": "Insufficient capacity: minimum {minimum} participants required for draw",
    "starved": "Insufficient capacity: {count} participant(s) have no valid recipients due to exclusion rules",
    "matching": "Insufficient capacity: exclusion rules leave {count} participant(s) without a distinct recipient",
    "two_cycle": (
        "No two-cycle-free assignment: exclusion rules only allow pairs of participants "
        "to draw each other"
    ),
    "duplicates": "Duplicate participant IDs detected",
}


@dataclass(frozen=True)
class Feasible:
    participant_count: int
    exhaustive: bool = True

    @property
    def is_feasible(self) -> bool:
        return True


@dataclass(frozen=True)
class Infeasible:
    reason: InfeasibilityReason
    message: str
    participant_count: int

    @property
    def is_feasible(self) -> bool:
        return False

    def to_error(self) -> InfeasibleError:
        return InfeasibleError(self.reason, self.message)


Feasibility = Union[Feasible, Infeasible]


class SearchBudgetExceeded(Exception):
    """The exact search ran out of nodes or time before reaching an answer."""


def search_two_cycle_free_assignment(
    participants: Sequence[ParticipantId],
    allowed: Dict[ParticipantId, Set[ParticipantId]],
    node_budget: int = DEFAULT_SEARCH_BUDGET,
    rng: Optional[random.Random] = None,
    deadline: Optional[float] = None,
) -> Optional[Dict[ParticipantId, ParticipantId]]:
    """Exact search for a perfect matching that contains no 2-cycle.

    Givers are fixed most-constrained first and every partial assignment is
    pruned by checking that the remaining givers still admit a perfect matching.
    Returns the assignment found, or None when none exists. With ``rng`` the
    recipients of each giver are tried in random order. Raises
    SearchBudgetExceeded when ``node_budget`` nodes have been visited or
    ``deadline`` (a ``time.monotonic()`` value) has passed.
    """
    assignment: Dict[ParticipantId, ParticipantId] = {}
    used: Set[ParticipantId] = set()
    visited = 0

    def options(giver: ParticipantId):
        return [r for r in allowed[giver] if r not in used and assignment.get(r) != giver]

    def completable(remaining) -> bool:
        residual = {giver: options(giver) for giver in remaining}
        return len(maximum_matching(remaining, residual)) == len(remaining)

    def search() -> bool:
        nonlocal visited
        if len(assignment) == len(participants):
            return True
        visited += 1
        if visited > node_budget:
            raise SearchBudgetExceeded()
        if deadline is not None and time.monotonic() > deadline:
            raise SearchBudgetExceeded()

        remaining = [giver for giver in participants if giver not in assignment]
        giver = min(remaining, key=lambda g: len(options(g)))
        rest = [g for g in remaining if g != giver]
        candidates = options(giver)
        if rng is not None:
            rng.shuffle(candidates)
        for recipient in candidates:
            assignment[giver] = recipient
            used.add(recipient)
            if completable(rest) and search():
                return True
            used.discard(recipient)
            del assignment[giver]
        return False

    if search():
        return dict(assignment)
    return None


def check_feasibility(
    participant_ids: Sequence[ParticipantId],
    graph: ExclusionGraph,
    search_budget: int = DEFAULT_SEARCH_BUDGET,
    deadline: Optional[float] = None,
) -> Feasibility:
    participants = list(participant_ids)
    count = len(participants)

    if len(set(participants)) != count:
        return Infeasible(InfeasibilityReason.DUPLICATE_PARTICIPANTS, MESSAGES["duplicates"], count)

    if count < MIN_PARTICIPANTS:
        return Infeasible(
            InfeasibilityReason.INSUFFICIENT_CAPACITY,
            MESSAGES["too_few"].format(minimum=MIN_PARTICIPANTS),
            count,
        )

    allowed = graph.allowed_map(participants)

    starved = [giver for giver in participants if not allowed[giver]]
    if starved:
        return Infeasible(
            InfeasibilityReason.INSUFFICIENT_CAPACITY,
            MESSAGES["starved"].format(count=len(starved)),
            count,
        )

    matching = maximum_matching(participants, allowed)
    if len(matching) < count:
        return Infeasible(
            InfeasibilityReason.INSUFFICIENT_CAPACITY,
            MESSAGES["matching"].format(count=count - len(matching)),
            count,
        )

    # Three participants without fixed points can only form a 3-cycle.
    if count == MIN_PARTICIPANTS:
        return Feasible(count)

    try:
        found = search_two_cycle_free_assignment(participants, allowed, search_budget, deadline=deadline)
    except SearchBudgetExceeded:
        logger.bind(participants=count, rules=len(graph)).debug(
            "Two-cycle-free search budget exhausted; deferring to generation"
        )
        return Feasible(count, exhaustive=False)
    if found is None:
        return Infeasible(InfeasibilityReason.NO_TWO_CYCLE_FREE_ASSIGNMENT, MESSAGES["two_cycle"], count)
    return Feasible(count)
