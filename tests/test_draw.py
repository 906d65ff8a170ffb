import gc
import threading
from decimal import Decimal

import pytest

from santadraw.core.config import Settings
from santadraw.db import Base, DrawState, get_session, init_engine, repo
from santadraw.services import draw as draw_service
from santadraw.services import groups
from santadraw.services.draw import DrawOrchestrator, GroupLocks, validate_budget
from santadraw.services.errors import (
    AlgorithmExhaustedError,
    AlreadyCompletedError,
    DrawInProgressError,
    DrawNotCompletedError,
    GroupNotFoundError,
    InfeasibilityReason,
    InfeasibleError,
    InvalidBudgetError,
    NotParticipantError,
)


@pytest.fixture
def engine(tmp_path):
    engine = init_engine(
        f"sqlite+pysqlite:///{tmp_path / 'draw.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def orchestrator(engine):
    return DrawOrchestrator(notifier=lambda event: None, locks=GroupLocks())


def make_group(size, exclusions=()):
    with get_session() as session:
        users = [groups.ensure_user(session, f"user{i}@example.com", f"User {i}") for i in range(size)]
        group = groups.create_group(session, "Office party", users[0])
        for user in users[1:]:
            groups.join_group(session, group, user)
        for first, second in exclusions:
            groups.add_exclusion_rule(session, group, users[first].id, users[second].id)
        return group.id, [user.id for user in users]


def load_assignments(group_id):
    with get_session() as session:
        return {a.giver_user_id: a.receiver_user_id for a in repo.list_assignments(session, group_id)}


def load_group(group_id):
    with get_session() as session:
        return repo.get_group_by_id(session, group_id)


def assert_valid(user_ids, assignments):
    assert sorted(assignments.keys()) == sorted(user_ids)
    assert sorted(assignments.values()) == sorted(user_ids)
    for giver, receiver in assignments.items():
        assert giver != receiver
        assert assignments[receiver] != giver


@pytest.mark.parametrize("size", [3, 4, 5, 8, 30])
def test_draw_without_rules_always_succeeds(orchestrator, size):
    group_id, user_ids = make_group(size)
    result = orchestrator.execute_draw(group_id, Decimal("50"))

    assert result.assignments_created == size
    assert result.participant_count == size
    assert_valid(user_ids, load_assignments(group_id))

    group = load_group(group_id)
    assert group.draw_state == DrawState.DRAWN
    assert group.budget == Decimal("50.00")
    assert group.draw_completed_at is not None


def test_three_participants_validate_and_draw_a_three_cycle(orchestrator):
    group_id, (x, y, z) = make_group(3)

    validation = orchestrator.validate_draw(group_id)
    assert validation.is_valid
    assert validation.can_draw
    assert validation.participant_count == 3
    assert validation.exclusion_rule_count == 0
    assert validation.errors == []

    orchestrator.execute_draw(group_id, "20.00")
    assignments = load_assignments(group_id)
    assert assignments[assignments[assignments[x]]] == x


def test_over_restrictive_rules_are_reported_and_nothing_is_persisted(orchestrator):
    group_id, user_ids = make_group(3, exclusions=[(0, 1), (0, 2)])

    validation = orchestrator.validate_draw(group_id)
    assert not validation.is_valid
    assert not validation.can_draw
    assert validation.exclusion_rule_count == 2
    assert any("insufficient capacity" in error.lower() for error in validation.errors)

    with pytest.raises(InfeasibleError) as excinfo:
        orchestrator.execute_draw(group_id, 25)
    assert excinfo.value.reason == InfeasibilityReason.INSUFFICIENT_CAPACITY

    assert load_assignments(group_id) == {}
    group = load_group(group_id)
    assert group.draw_state == DrawState.NOT_DRAWN
    assert group.budget is None


def test_single_rule_is_respected(orchestrator):
    group_id, (a, b, c, d) = make_group(4, exclusions=[(0, 1)])

    validation = orchestrator.validate_draw(group_id)
    assert validation.is_valid

    orchestrator.execute_draw(group_id, 10)
    assignments = load_assignments(group_id)
    assert assignments[a] != b
    assert assignments[b] != a
    assert_valid([a, b, c, d], assignments)


def test_two_cycle_only_rules_cannot_be_drawn(orchestrator):
    group_id, _ = make_group(4, exclusions=[(0, 2), (0, 3), (1, 2), (1, 3)])

    validation = orchestrator.validate_draw(group_id)
    assert not validation.is_valid
    assert any("two-cycle" in error for error in validation.errors)

    with pytest.raises(InfeasibleError) as excinfo:
        orchestrator.execute_draw(group_id, 10)
    assert excinfo.value.reason == InfeasibilityReason.NO_TWO_CYCLE_FREE_ASSIGNMENT
    assert load_assignments(group_id) == {}


def test_validate_draw_is_idempotent_and_read_only(orchestrator):
    group_id, _ = make_group(5, exclusions=[(1, 2)])

    results = [orchestrator.validate_draw(group_id) for _ in range(3)]
    assert results[0] == results[1] == results[2]
    assert load_group(group_id).draw_state == DrawState.NOT_DRAWN
    assert load_assignments(group_id) == {}


def test_validate_draw_warns_once_drawn(orchestrator):
    group_id, _ = make_group(4)
    orchestrator.execute_draw(group_id, 10)

    validation = orchestrator.validate_draw(group_id)
    assert validation.is_valid
    assert not validation.can_draw
    assert validation.errors == []
    assert draw_service.ALREADY_DRAWN_WARNING in validation.warnings


def test_validate_draw_warns_about_rules_for_former_participants(orchestrator):
    group_id, user_ids = make_group(5, exclusions=[(1, 2)])
    with get_session() as session:
        repo.remove_user_from_group(session, user_ids[2], group_id)

    validation = orchestrator.validate_draw(group_id)
    assert validation.is_valid
    assert validation.participant_count == 4
    assert any("no longer participants" in warning for warning in validation.warnings)


def test_second_draw_is_rejected_and_changes_nothing(orchestrator):
    group_id, _ = make_group(6)
    first = orchestrator.execute_draw(group_id, Decimal("100"))
    committed = load_assignments(group_id)

    with pytest.raises(AlreadyCompletedError):
        orchestrator.execute_draw(group_id, Decimal("250"))

    assert load_assignments(group_id) == committed
    group = load_group(group_id)
    assert group.budget == Decimal("100.00")
    assert first.budget == Decimal("100.00")


def test_concurrent_draws_commit_exactly_once(orchestrator):
    group_id, user_ids = make_group(10)
    outcomes = []

    def run():
        try:
            orchestrator.execute_draw(group_id, 30)
            outcomes.append("drawn")
        except AlreadyCompletedError:
            outcomes.append("already")

    threads = [threading.Thread(target=run) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["already", "drawn"]
    assert_valid(user_ids, load_assignments(group_id))


def test_exhausted_generation_leaves_no_trace(orchestrator, monkeypatch):
    group_id, _ = make_group(5)

    def exhausted(participant_ids, graph, **kwargs):
        raise AlgorithmExhaustedError("exhausted", len(participant_ids), len(graph), attempts=50)

    monkeypatch.setattr(draw_service, "generate_assignments", exhausted)

    with pytest.raises(AlgorithmExhaustedError) as excinfo:
        orchestrator.execute_draw(group_id, 40)
    assert excinfo.value.group_id == group_id

    assert load_assignments(group_id) == {}
    group = load_group(group_id)
    assert group.draw_state == DrawState.NOT_DRAWN
    assert group.budget is None


def test_invalid_budget_is_rejected_before_drawing(orchestrator):
    group_id, _ = make_group(4)
    for budget in ("0", "-5", "abc", "12.345", "12.500", "100000000", "NaN"):
        with pytest.raises(InvalidBudgetError):
            orchestrator.execute_draw(group_id, budget)
    assert load_group(group_id).draw_state == DrawState.NOT_DRAWN


def test_validate_budget_normalizes_to_cents():
    assert validate_budget(10) == Decimal("10.00")
    assert validate_budget("0.01") == Decimal("0.01")
    assert validate_budget(Decimal("12.50")) == Decimal("12.50")
    assert validate_budget(19.99) == Decimal("19.99")


def test_unknown_group(orchestrator):
    with pytest.raises(GroupNotFoundError):
        orchestrator.validate_draw(999)
    with pytest.raises(GroupNotFoundError):
        orchestrator.execute_draw(999, 10)


def test_busy_group_lock_times_out(engine):
    locks = GroupLocks()
    settings = Settings(
        database_url="sqlite://",
        log_level="INFO",
        log_path="logs/test.log",
        draw_lock_timeout_seconds=0.05,
    )
    orchestrator = DrawOrchestrator(settings=settings, notifier=lambda event: None, locks=locks)
    group_id, _ = make_group(4)

    lock = locks.for_group(group_id)
    lock.acquire()
    try:
        with pytest.raises(DrawInProgressError):
            orchestrator.execute_draw(group_id, 10)
    finally:
        lock.release()
    assert load_group(group_id).draw_state == DrawState.NOT_DRAWN



def make_settings(**overrides):
    return Settings(database_url="sqlite://", log_level="INFO", log_path="logs/test.log", **overrides)


def test_validated_dense_group_draws_without_resampling(engine):
    # Every pair inside each half is excluded, so gifts alternate halves.
    rules = [(a, b) for side in (range(5), range(5, 10)) for a in side for b in side if a < b]
    group_id, user_ids = make_group(10, exclusions=rules)
    settings = make_settings(draw_max_attempts=1, draw_repair_attempts=0)
    orchestrator = DrawOrchestrator(settings=settings, notifier=lambda event: None, locks=GroupLocks())

    assert orchestrator.validate_draw(group_id).is_valid
    orchestrator.execute_draw(group_id, 10, seed=5)

    assignments = load_assignments(group_id)
    assert_valid(user_ids, assignments)
    left = set(user_ids[:5])
    for giver, receiver in assignments.items():
        assert (giver in left) != (receiver in left)


def test_timeout_covers_the_feasibility_recheck(engine):
    settings = make_settings(draw_timeout_seconds=-1)
    orchestrator = DrawOrchestrator(settings=settings, notifier=lambda event: None, locks=GroupLocks())
    group_id, _ = make_group(5)

    with pytest.raises(AlgorithmExhaustedError) as excinfo:
        orchestrator.execute_draw(group_id, 10)
    assert excinfo.value.attempts == 0
    assert load_assignments(group_id) == {}
    assert load_group(group_id).draw_state == DrawState.NOT_DRAWN


def test_group_locks_are_released_when_unused():
    locks = GroupLocks()
    lock = locks.for_group(7)
    assert locks.for_group(7) is lock
    assert len(locks) == 1

    del lock
    gc.collect()
    assert len(locks) == 0

def test_completion_schedules_notifications(engine):
    orchestrator = DrawOrchestrator(locks=GroupLocks())
    group_id, user_ids = make_group(4)

    orchestrator.execute_draw(group_id, 15)

    with get_session() as session:
        notifications = repo.list_draw_notifications(session, group_id)
    assert [n.recipient_user_id for n in notifications] == sorted(user_ids)
    assert all(n.sent_at is None and n.attempt_count == 0 for n in notifications)


def test_notification_failure_does_not_undo_the_draw(engine):
    events = []

    def failing_notifier(event):
        events.append(event)
        raise RuntimeError("mail server down")

    orchestrator = DrawOrchestrator(notifier=failing_notifier, locks=GroupLocks())
    group_id, user_ids = make_group(5)

    result = orchestrator.execute_draw(group_id, 15)

    assert result.assignments_created == 5
    assert events[0].group_id == group_id
    assert sorted(events[0].participant_ids) == sorted(user_ids)
    assert load_group(group_id).draw_state == DrawState.DRAWN


def test_participants_only_see_their_own_recipient(orchestrator):
    group_id, user_ids = make_group(4)
    with get_session() as session:
        outsider = groups.ensure_user(session, "outsider@example.com")
        outsider_id = outsider.id

    with pytest.raises(DrawNotCompletedError):
        orchestrator.get_my_recipient(group_id, user_ids[0])

    orchestrator.execute_draw(group_id, 10)
    assignments = load_assignments(group_id)

    for user_id in user_ids:
        assert orchestrator.get_my_recipient(group_id, user_id) == assignments[user_id]
    with pytest.raises(NotParticipantError):
        orchestrator.get_my_recipient(group_id, outsider_id)
    with pytest.raises(GroupNotFoundError):
        orchestrator.get_my_recipient(999, user_ids[0])
