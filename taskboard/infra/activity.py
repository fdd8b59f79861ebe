from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from taskboard.config import SETTINGS
from taskboard.domain.entities import ActivityEvent
from taskboard.domain.enums import ActivityType

from .db import SessionLocal
from .models import ActivityModel

logger = logging.getLogger(__name__)


class ActivityRecorder:
    """Append-only activity log, trimmed to the newest ``limit`` rows."""

    def __init__(self, session_factory: sessionmaker | None = None, limit: int | None = None) -> None:
        self._session_factory = session_factory or SessionLocal
        self._limit = limit if limit is not None else SETTINGS.activity_log_limit

    def record(self, event: ActivityEvent) -> None:
        with self._session_factory() as session:
            session.add(
                ActivityModel(
                    type=event.type.value,
                    board_id=event.board_id,
                    board_title=event.board_title,
                    task_id=event.task_id,
                    task_text=event.task_text,
                    changes=list(event.changes),
                    timestamp=event.timestamp,
                )
            )
            session.flush()
            stale_ids = select(ActivityModel.id).order_by(ActivityModel.id.desc()).offset(self._limit)
            session.execute(
                delete(ActivityModel).where(ActivityModel.id.in_(stale_ids))
            )
            session.commit()

    def list_recent(self, board_id: int | None = None, limit: int = 50) -> list[ActivityEvent]:
        with self._session_factory() as session:
            stmt = select(ActivityModel).order_by(ActivityModel.id.desc()).limit(limit)
            if board_id is not None:
                stmt = stmt.where(ActivityModel.board_id == board_id)
            return [
                ActivityEvent(
                    type=ActivityType(row.type),
                    board_id=row.board_id,
                    board_title=row.board_title,
                    task_id=row.task_id,
                    task_text=row.task_text,
                    changes=tuple(row.changes or ()),
                    timestamp=row.timestamp,
                )
                for row in session.scalars(stmt)
            ]


def safe_record(recorder: ActivityRecorder | None, event: ActivityEvent) -> None:
    """Record ``event`` without letting a logging failure reach the caller."""
    if recorder is None:
        return
    try:
        recorder.record(event)
    except Exception:  # noqa: BLE001
        logger.warning("Activity record for board %s failed", event.board_id, exc_info=True)
