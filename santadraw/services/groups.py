from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from santadraw.db import ExclusionRule, Group, User, repo
from santadraw.services.errors import (
    AlreadyCompletedError,
    GroupNotFoundError,
    InvalidRuleError,
    ParticipantError,
)
from santadraw.services.exclusions import canonical_pair


@dataclass(frozen=True)
class JoinResult:
    added: bool
    message: str
    group: Group
    user: User


def ensure_user(session, email: str, display_name: Optional[str] = None) -> User:
    return repo.upsert_user(session, email, display_name)


def create_group(session, name: str, organizer: User) -> Group:
    group = repo.create_group(session, name, organizer.id)
    repo.add_user_to_group(session, organizer.id, group.id)
    logger.bind(group_id=group.id, organizer_id=organizer.id).info("Group created")
    return group


def require_group(session, group_id: int) -> Group:
    group = repo.get_group_by_id(session, group_id)
    if not group:
        raise GroupNotFoundError("Group not found.")
    return group


def _require_not_drawn(group: Group) -> None:
    if group.is_drawn:
        raise AlreadyCompletedError("This group has already completed the draw.")


def join_group(session, group: Group, user: User) -> JoinResult:
    if group.is_drawn:
        return JoinResult(
            False,
            "This group has already completed the draw and is no longer accepting participants.",
            group,
            user,
        )

    added = repo.add_user_to_group(session, user.id, group.id)
    if not added:
        return JoinResult(False, "You are already a participant in this group.", group, user)

    return JoinResult(True, "You have joined the Secret Santa group!", group, user)


def remove_participant(session, group: Group, user_id: int) -> None:
    _require_not_drawn(group)
    if user_id == group.organizer_user_id:
        raise ParticipantError("The organizer cannot be removed from the group.")
    if not repo.remove_user_from_group(session, user_id, group.id):
        raise ParticipantError("User is not a participant in this group.")
    for rule in repo.list_exclusion_rules(session, group.id):
        if user_id in rule.as_pair():
            session.delete(rule)


def add_exclusion_rule(
    session,
    group: Group,
    user_id_1: int,
    user_id_2: int,
    created_by_user_id: Optional[int] = None,
) -> ExclusionRule:
    _require_not_drawn(group)
    pair = canonical_pair(user_id_1, user_id_2)
    for user_id in pair:
        if not repo.is_user_in_group(session, user_id, group.id):
            raise ParticipantError("Both users must be participants in this group.")
    if repo.get_exclusion_rule(session, group.id, pair):
        raise InvalidRuleError("An exclusion rule already exists for this pair.")
    return repo.create_exclusion_rule(session, group.id, pair, created_by_user_id)


def delete_exclusion_rule(session, group: Group, user_id_1: int, user_id_2: int) -> bool:
    _require_not_drawn(group)
    return repo.delete_exclusion_rule(session, group.id, canonical_pair(user_id_1, user_id_2))
