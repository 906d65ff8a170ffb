from santadraw.db.models import (
    Assignment,
    Base,
    DrawNotification,
    DrawState,
    ExclusionRule,
    Group,
    NotificationType,
    User,
    group_participants,
)
from santadraw.db.session import SessionLocal, get_session, init_engine, session_scope

__all__ = [
    "Assignment",
    "Base",
    "DrawNotification",
    "DrawState",
    "ExclusionRule",
    "Group",
    "NotificationType",
    "User",
    "group_participants",
    "SessionLocal",
    "get_session",
    "init_engine",
    "session_scope",
]
