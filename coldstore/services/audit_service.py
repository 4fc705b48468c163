from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coldstore.models import AdminActionLog

logger = logging.getLogger(__name__)


def log_action(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    target_type: str,
    target_id: int | None,
    description: str,
    ip: str | None = None,
    metadata: dict | None = None,
) -> None:
    """Append an admin action log row without putting the caller's work at risk.

    The insert runs in a SAVEPOINT; if it fails only the savepoint is rolled
    back and the failure is logged.
    """
    try:
        with db.begin_nested():
            db.add(
                AdminActionLog(
                    actor_user_id=actor_user_id,
                    action=action,
                    target_type=target_type,
                    target_id=target_id,
                    description=description,
                    ip=ip,
                    meta=metadata or {},
                )
            )
    except SQLAlchemyError:
        logger.warning(
            'admin action log write failed',
            exc_info=True,
            extra={'action': action, 'target_type': target_type, 'target_id': target_id},
        )


def list_actions(
    db: Session,
    *,
    target_type: str | None = None,
    target_id: int | None = None,
    limit: int = 200,
) -> list[AdminActionLog]:
    query = select(AdminActionLog).order_by(AdminActionLog.created_at.desc(), AdminActionLog.id.desc()).limit(limit)
    if target_type:
        query = query.where(AdminActionLog.target_type == target_type)
    if target_id is not None:
        query = query.where(AdminActionLog.target_id == target_id)
    return db.execute(query).scalars().all()
