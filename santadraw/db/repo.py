from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import IntegrityError

from santadraw.db.models import (
    Assignment,
    DrawNotification,
    DrawState,
    ExclusionRule,
    Group,
    NotificationType,
    User,
    group_participants,
)


def get_user_by_id(session, user_id: int) -> Optional[User]:
    return session.scalar(select(User).where(User.id == user_id))


def get_user_by_email(session, email: str) -> Optional[User]:
    return session.scalar(select(User).where(User.email == email))


def upsert_user(session, email: str, display_name: Optional[str]) -> User:
    user = get_user_by_email(session, email)
    if user:
        user.display_name = display_name
        return user

    user = User(email=email, display_name=display_name)
    session.add(user)
    session.flush()
    return user


def get_group_by_id(session, group_id: int) -> Optional[Group]:
    return session.scalar(select(Group).where(Group.id == group_id))


def get_group_for_update(session, group_id: int) -> Optional[Group]:
    return session.scalar(select(Group).where(Group.id == group_id).with_for_update())


def create_group(session, name: str, organizer_user_id: int) -> Group:
    group = Group(name=name, organizer_user_id=organizer_user_id)
    session.add(group)
    session.flush()
    return group


def is_user_in_group(session, user_id: int, group_id: int) -> bool:
    return session.scalar(
        select(func.count())
        .select_from(group_participants)
        .where(
            and_(group_participants.c.user_id == user_id, group_participants.c.group_id == group_id)
        )
    ) > 0


def add_user_to_group(session, user_id: int, group_id: int) -> bool:
    if is_user_in_group(session, user_id, group_id):
        return False
    try:
        session.execute(group_participants.insert().values(user_id=user_id, group_id=group_id))
        return True
    except IntegrityError:
        return False


def remove_user_from_group(session, user_id: int, group_id: int) -> bool:
    result = session.execute(
        delete(group_participants).where(
            and_(group_participants.c.user_id == user_id, group_participants.c.group_id == group_id)
        )
    )
    return bool(result.rowcount)


def list_participant_ids(session, group_id: int) -> List[int]:
    return list(
        session.scalars(
            select(group_participants.c.user_id)
            .where(group_participants.c.group_id == group_id)
            .order_by(group_participants.c.user_id)
        ).all()
    )


def list_exclusion_rules(session, group_id: int) -> List[ExclusionRule]:
    return list(
        session.scalars(
            select(ExclusionRule).where(ExclusionRule.group_id == group_id).order_by(ExclusionRule.id)
        ).all()
    )


def list_exclusion_pairs(session, group_id: int) -> List[Tuple[int, int]]:
    return [rule.as_pair() for rule in list_exclusion_rules(session, group_id)]


def get_exclusion_rule(session, group_id: int, pair: Tuple[int, int]) -> Optional[ExclusionRule]:
    low, high = pair
    return session.scalar(
        select(ExclusionRule).where(
            and_(
                ExclusionRule.group_id == group_id,
                ExclusionRule.user_id_1 == low,
                ExclusionRule.user_id_2 == high,
            )
        )
    )


def create_exclusion_rule(
    session,
    group_id: int,
    pair: Tuple[int, int],
    created_by_user_id: Optional[int],
) -> ExclusionRule:
    low, high = pair
    rule = ExclusionRule(
        group_id=group_id,
        user_id_1=low,
        user_id_2=high,
        created_by_user_id=created_by_user_id,
    )
    session.add(rule)
    session.flush()
    return rule


def delete_exclusion_rule(session, group_id: int, pair: Tuple[int, int]) -> bool:
    low, high = pair
    result = session.execute(
        delete(ExclusionRule).where(
            and_(
                ExclusionRule.group_id == group_id,
                ExclusionRule.user_id_1 == low,
                ExclusionRule.user_id_2 == high,
            )
        )
    )
    return bool(result.rowcount)


def create_assignments(session, group_id: int, assignments: Dict[int, int]) -> None:
    rows = [
        Assignment(group_id=group_id, giver_user_id=giver_id, receiver_user_id=receiver_id)
        for giver_id, receiver_id in assignments.items()
    ]
    session.add_all(rows)


def list_assignments(session, group_id: int) -> List[Assignment]:
    return list(
        session.scalars(
            select(Assignment).where(Assignment.group_id == group_id).order_by(Assignment.giver_user_id)
        ).all()
    )


def get_assignment_for_giver(session, group_id: int, giver_user_id: int) -> Optional[Assignment]:
    return session.scalar(
        select(Assignment).where(
            and_(Assignment.group_id == group_id, Assignment.giver_user_id == giver_user_id)
        )
    )


def mark_group_drawn(
    session,
    group: Group,
    budget: Decimal,
    completed_at: datetime.datetime,
) -> None:
    group.draw_state = DrawState.DRAWN
    group.budget = budget
    group.draw_completed_at = completed_at
    group.updated_at = completed_at


def create_draw_notifications(
    session,
    group_id: int,
    recipient_user_ids: Iterable[int],
    scheduled_at: datetime.datetime,
) -> List[DrawNotification]:
    rows = [
        DrawNotification(
            group_id=group_id,
            recipient_user_id=user_id,
            type=NotificationType.DRAW_COMPLETED,
            scheduled_at=scheduled_at,
            attempt_count=0,
        )
        for user_id in recipient_user_ids
    ]
    session.add_all(rows)
    return rows


def list_draw_notifications(session, group_id: int) -> List[DrawNotification]:
    return list(
        session.scalars(
            select(DrawNotification)
            .where(DrawNotification.group_id == group_id)
            .order_by(DrawNotification.recipient_user_id)
        ).all()
    )
