from __future__ import annotations

import datetime
import threading
import time
import weakref
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError

from santadraw.core.config import Settings
from santadraw.db import get_session, repo
from santadraw.services.assignment import DEFAULT_MAX_ATTEMPTS, DEFAULT_REPAIR_ATTEMPTS, generate_assignments
from santadraw.services.errors import (
    AlgorithmExhaustedError,
    AlreadyCompletedError,
    DrawInProgressError,
    DrawNotCompletedError,
    GroupNotFoundError,
    InfeasibleError,
    InvalidBudgetError,
    InvalidRuleError,
    NotParticipantError,
)
from santadraw.services.exclusions import ExclusionGraph
from santadraw.services.feasibility import DEFAULT_SEARCH_BUDGET, check_feasibility
from santadraw.services.notifications import (
    DrawCompletedEvent,
    Notifier,
    dispatch,
    schedule_draw_notifications,
)

MIN_BUDGET = Decimal("0.01")
MAX_BUDGET = Decimal("99999999.99")
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0
ALREADY_DRAWN_WARNING = "Draw has already been completed for this group"


@dataclass(frozen=True)
class DrawValidation:
    group_id: int
    is_valid: bool
    can_draw: bool
    participant_count: int
    exclusion_rule_count: int
    errors: List[str]
    warnings: List[str]


@dataclass(frozen=True)
class DrawResult:
    group_id: int
    budget: Decimal
    draw_completed_at: datetime.datetime
    participant_count: int
    assignments_created: int


class GroupLocks:
    """Per-group mutual exclusion for draws running in this process."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def for_group(self, group_id: int) -> threading.Lock:
        """Return the lock for a group; it is dropped once no caller holds a reference."""
        with self._guard:
            lock = self._locks.get(group_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[group_id] = lock
            return lock


group_locks = GroupLocks()


def validate_budget(value) -> Decimal:
    try:
        budget = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidBudgetError("Budget must be a valid decimal value.") from exc
    if not budget.is_finite():
        raise InvalidBudgetError("Budget must be a valid decimal value.")
    if budget < MIN_BUDGET or budget > MAX_BUDGET:
        raise InvalidBudgetError(f"Budget must be between {MIN_BUDGET} and {MAX_BUDGET}.")
    if budget.as_tuple().exponent < -2:
        raise InvalidBudgetError("Budget must have at most 2 decimal places.")
    return budget.quantize(Decimal("0.01"))


def _now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.timezone.utc)


class DrawOrchestrator:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory=get_session,
        notifier: Optional[Notifier] = None,
        locks: Optional[GroupLocks] = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.notifier = notifier or schedule_draw_notifications
        self.locks = locks or group_locks

    def _option(self, name: str, default):
        if self.settings is None:
            return default
        return getattr(self.settings, name)

    def validate_draw(self, group_id: int) -> DrawValidation:
        with self.session_factory() as session:
            group = repo.get_group_by_id(session, group_id)
            if not group:
                raise GroupNotFoundError("Group not found.")
            already_drawn = group.is_drawn
            participant_ids = repo.list_participant_ids(session, group_id)
            pairs = repo.list_exclusion_pairs(session, group_id)

        errors: List[str] = []
        warnings: List[str] = []
        if already_drawn:
            warnings.append(ALREADY_DRAWN_WARNING)

        try:
            graph = ExclusionGraph.build(pairs)
        except InvalidRuleError as exc:
            errors.append(str(exc))
            graph = None

        if graph is not None:
            dangling = graph.dangling_edges(participant_ids)
            if dangling:
                warnings.append(
                    f"{len(dangling)} exclusion rule(s) reference users who are no longer "
                    "participants and are ignored"
                )
            verdict = check_feasibility(
                participant_ids,
                graph,
                search_budget=self._option("feasibility_search_budget", DEFAULT_SEARCH_BUDGET),
            )
            if not verdict.is_feasible:
                errors.append(verdict.message)

        is_valid = not errors
        can_draw = is_valid and not already_drawn

        logger.bind(group_id=group_id).info(
            "Draw validation: is_valid={is_valid}, can_draw={can_draw}, participants={participants}, rules={rules}",
            is_valid=is_valid,
            can_draw=can_draw,
            participants=len(participant_ids),
            rules=len(pairs),
        )

        return DrawValidation(
            group_id=group_id,
            is_valid=is_valid,
            can_draw=can_draw,
            participant_count=len(participant_ids),
            exclusion_rule_count=len(pairs),
            errors=errors,
            warnings=warnings,
        )

    def execute_draw(self, group_id: int, budget, seed: Optional[int] = None) -> DrawResult:
        final_budget = validate_budget(budget)

        lock = self.locks.for_group(group_id)
        if not lock.acquire(timeout=self._option("draw_lock_timeout_seconds", DEFAULT_LOCK_TIMEOUT_SECONDS)):
            raise DrawInProgressError("Another draw is already running for this group.")
        try:
            result, participant_ids = self._execute_locked(group_id, final_budget, seed)
        finally:
            lock.release()

        event = DrawCompletedEvent(
            group_id=group_id,
            participant_ids=tuple(participant_ids),
            occurred_at=result.draw_completed_at,
        )
        dispatch(self.notifier, event)
        return result

    def _execute_locked(self, group_id: int, budget: Decimal, seed: Optional[int]):
        with self.session_factory() as session:
            group = repo.get_group_for_update(session, group_id)
            if not group:
                raise GroupNotFoundError("Group not found.")
            if group.is_drawn:
                raise AlreadyCompletedError("The draw has already been completed for this group.")

            participant_ids = repo.list_participant_ids(session, group_id)
            graph = ExclusionGraph.build(repo.list_exclusion_pairs(session, group_id))
            log = logger.bind(group_id=group_id, participants=len(participant_ids), rules=len(graph))
            search_budget = self._option("feasibility_search_budget", DEFAULT_SEARCH_BUDGET)
            deadline = time.monotonic() + self._option("draw_timeout_seconds", DEFAULT_TIMEOUT_SECONDS)

            verdict = check_feasibility(participant_ids, graph, search_budget=search_budget, deadline=deadline)
            if not verdict.is_feasible:
                log.warning("Draw rejected: {reason}", reason=verdict.reason.value)
                raise verdict.to_error()

            try:
                assignments = generate_assignments(
                    participant_ids,
                    graph,
                    seed=seed,
                    max_attempts=self._option("draw_max_attempts", DEFAULT_MAX_ATTEMPTS),
                    repair_attempts=self._option("draw_repair_attempts", DEFAULT_REPAIR_ATTEMPTS),
                    deadline=deadline,
                    search_budget=search_budget,
                )
            except AlgorithmExhaustedError as exc:
                exc.group_id = group_id
                log.bind(attempts=exc.attempts).error("Draw generation exhausted: {error}", error=str(exc))
                raise
            except InfeasibleError as exc:
                log.warning("Draw rejected during generation: {reason}", reason=exc.reason.value)
                raise

            completed_at = _now()
            try:
                repo.create_assignments(session, group_id, assignments)
                repo.mark_group_drawn(session, group, budget, completed_at)
                session.flush()
            except IntegrityError as exc:
                raise AlreadyCompletedError("Secret Santa assignments already exist for this group.") from exc

            log.info("Draw completed")

        result = DrawResult(
            group_id=group_id,
            budget=budget,
            draw_completed_at=completed_at,
            participant_count=len(participant_ids),
            assignments_created=len(assignments),
        )
        return result, participant_ids

    def get_my_recipient(self, group_id: int, user_id: int) -> int:
        with self.session_factory() as session:
            return get_my_recipient(session, group_id, user_id)


def get_my_recipient(session, group_id: int, user_id: int) -> int:
    group = repo.get_group_by_id(session, group_id)
    if not group:
        raise GroupNotFoundError("Group not found.")
    if not group.is_drawn:
        raise DrawNotCompletedError("Draw has not been completed yet.")
    if not repo.is_user_in_group(session, user_id, group_id):
        raise NotParticipantError("You are not a participant in this group.")
    assignment = repo.get_assignment_for_giver(session, group_id, user_id)
    if not assignment:
        raise NotParticipantError("No assignment exists for this participant.")
    return assignment.receiver_user_id
