from __future__ import annotations

import random
import time
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from loguru import logger

from santadraw.services.errors import AlgorithmExhaustedError, InfeasibilityReason, InfeasibleError
from santadraw.services.exclusions import ExclusionGraph, ParticipantId
from santadraw.services.feasibility import (
    DEFAULT_SEARCH_BUDGET,
    MIN_PARTICIPANTS,
    SearchBudgetExceeded,
    search_two_cycle_free_assignment,
)
from santadraw.services.matching import random_perfect_matching

DEFAULT_MAX_ATTEMPTS = 50
DEFAULT_REPAIR_ATTEMPTS = 8

AssignmentMap = Dict[ParticipantId, ParticipantId]


def _make_rng(seed: Optional[int]) -> random.Random:
    if seed is None:
        return random.SystemRandom()
    return random.Random(seed)


def find_two_cycles(assignments: Mapping[ParticipantId, ParticipantId]) -> List[Tuple[ParticipantId, ParticipantId]]:
    seen: Set[ParticipantId] = set()
    cycles = []
    for giver, receiver in assignments.items():
        if giver in seen:
            continue
        if assignments.get(receiver) == giver and receiver != giver:
            cycles.append((giver, receiver))
            seen.update((giver, receiver))
    return cycles


def is_valid_assignment(
    participant_ids: Sequence[ParticipantId],
    graph: ExclusionGraph,
    assignments: Mapping[ParticipantId, ParticipantId],
) -> bool:
    participants = set(participant_ids)
    if set(assignments.keys()) != participants or set(assignments.values()) != participants:
        return False
    if len(set(assignments.values())) != len(assignments):
        return False
    for giver, receiver in assignments.items():
        if giver == receiver:
            return False
        if graph.is_forbidden(giver, receiver):
            return False
        if assignments[receiver] == giver:
            return False
    return True


def _break_two_cycle(
    assignments: AssignmentMap,
    cycle: Tuple[ParticipantId, ParticipantId],
    allowed: Mapping[ParticipantId, Set[ParticipantId]],
    rng: random.Random,
    max_candidates: int,
) -> bool:
    """Rewire one 2-cycle x -> y -> x through a third giver r -> s.

    Two moves are tried per candidate: the swap x -> s, r -> y and the splice
    r -> x, y -> s which threads the pair into r's cycle. Neither can close a
    new 2-cycle, so every accepted move strictly lowers the 2-cycle count.
    """
    members = list(cycle)
    rng.shuffle(members)
    others = [giver for giver in assignments if giver not in cycle]
    rng.shuffle(others)
    candidates = others[:max_candidates]

    for third in candidates:
        third_receiver = assignments[third]
        for member in members:
            partner = assignments[member]
            if third_receiver in allowed[member] and partner in allowed[third]:
                assignments[member] = third_receiver
                assignments[third] = partner
                return True
            if member in allowed[third] and third_receiver in allowed[partner]:
                assignments[third] = member
                assignments[partner] = third_receiver
                return True
    return False


def _repair_two_cycles(
    assignments: AssignmentMap,
    allowed: Mapping[ParticipantId, Set[ParticipantId]],
    rng: random.Random,
    max_candidates: int,
) -> bool:
    while True:
        cycles = find_two_cycles(assignments)
        if not cycles:
            return True
        if not _break_two_cycle(assignments, rng.choice(cycles), allowed, rng, max_candidates):
            return False


def _exact_search(
    participants: Sequence[ParticipantId],
    allowed: Dict[ParticipantId, Set[ParticipantId]],
    rng: random.Random,
    search_budget: int,
    deadline: Optional[float],
) -> Optional[AssignmentMap]:
    # The shuffled pass keeps the result random; the ordered pass retraces
    # the search check_feasibility runs, so it succeeds wherever that one did.
    shuffled = list(participants)
    rng.shuffle(shuffled)
    for order, order_rng in ((shuffled, rng), (participants, None)):
        try:
            return search_two_cycle_free_assignment(order, allowed, search_budget, rng=order_rng, deadline=deadline)
        except SearchBudgetExceeded:
            continue
    return None


def generate_assignments(
    participant_ids: Sequence[ParticipantId],
    graph: Optional[ExclusionGraph] = None,
    seed: Optional[int] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    repair_attempts: int = DEFAULT_REPAIR_ATTEMPTS,
    deadline: Optional[float] = None,
    search_budget: int = DEFAULT_SEARCH_BUDGET,
) -> AssignmentMap:
    """Draw one random assignment with no self-gifts, no 2-cycles and no excluded pairs.

    Each attempt samples a random perfect matching on the allowed edges and
    repairs its 2-cycles locally; an attempt that cannot be repaired is thrown
    away. Once ``max_attempts`` are spent, the exact search from the
    feasibility check is run with up to ``search_budget`` nodes. ``deadline``
    is a ``time.monotonic()`` value after which generation stops. Raises
    AlgorithmExhaustedError when no assignment was found in time.
    """
    graph = graph or ExclusionGraph.build(())
    ordered = list(participant_ids)
    if len(ordered) < MIN_PARTICIPANTS:
        raise InfeasibleError(
            InfeasibilityReason.INSUFFICIENT_CAPACITY,
            f"At least {MIN_PARTICIPANTS} participants are required.",
        )

    rng = _make_rng(seed)
    allowed = graph.allowed_map(ordered)
    participants = list(ordered)
    log = logger.bind(participants=len(participants), rules=len(graph))

    attempt = 0
    while attempt < max_attempts:
        if deadline is not None and time.monotonic() > deadline:
            break
        attempt += 1
        rng.shuffle(participants)
        assignments = random_perfect_matching(participants, allowed, rng)
        if assignments is None:
            raise InfeasibleError(
                InfeasibilityReason.INSUFFICIENT_CAPACITY,
                "Exclusion rules leave some participants without a distinct recipient.",
            )
        if not _repair_two_cycles(assignments, allowed, rng, repair_attempts):
            log.bind(attempt=attempt).debug("Two-cycle repair failed; resampling")
            continue
        if is_valid_assignment(participants, graph, assignments):
            log.bind(attempt=attempt).debug("Assignments generated")
            return assignments

    assignments = _exact_search(ordered, allowed, rng, search_budget, deadline)
    if assignments is not None and is_valid_assignment(ordered, graph, assignments):
        log.bind(attempt=attempt).info("Assignments generated by exhaustive search after resampling")
        return assignments

    raise AlgorithmExhaustedError(
        f"Failed to generate assignments within {attempt} attempt(s).",
        participant_count=len(participants),
        rule_count=len(graph),
        attempts=attempt,
    )
