from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Callable, Tuple

from loguru import logger

from santadraw.db import get_session, repo


@dataclass(frozen=True)
class DrawCompletedEvent:
    group_id: int
    participant_ids: Tuple[int, ...]
    occurred_at: datetime.datetime


Notifier = Callable[[DrawCompletedEvent], None]


def schedule_draw_notifications(event: DrawCompletedEvent, session_factory=get_session) -> int:
    """Queue one draw-completed notification per participant in its own transaction."""
    with session_factory() as session:
        rows = repo.create_draw_notifications(
            session,
            event.group_id,
            event.participant_ids,
            scheduled_at=event.occurred_at,
        )
    logger.bind(group_id=event.group_id, notifications=len(rows)).info("Draw notifications scheduled")
    return len(rows)


def dispatch(notifier: Notifier, event: DrawCompletedEvent) -> bool:
    try:
        notifier(event)
    except Exception as exc:
        logger.bind(group_id=event.group_id).exception(
            "Draw notification dispatch failed: {error}", error=str(exc)
        )
        return False
    return True
