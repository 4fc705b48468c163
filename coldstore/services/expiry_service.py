from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from coldstore.models import GatePass, GatePassStatus
from coldstore.timeutil import utcnow

logger = logging.getLogger(__name__)


def sweep(db: Session, now: datetime | None = None) -> int:
    """Expire pending passes past ``expires_at`` and approved passes past ``approval_expires_at``.

    Both statements re-check status and deadline at write time, so running the
    sweep repeatedly or alongside approvals and pickups is harmless. Returns
    the number of passes moved to ``expired``.
    """
    now = now or utcnow()

    pending = db.execute(
        update(GatePass)
        .where(
            GatePass.status == GatePassStatus.PENDING,
            GatePass.expires_at.is_not(None),
            GatePass.expires_at < now,
        )
        .values(status=GatePassStatus.EXPIRED, updated_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount or 0

    approved = db.execute(
        update(GatePass)
        .where(
            GatePass.status == GatePassStatus.APPROVED,
            GatePass.approval_expires_at.is_not(None),
            GatePass.approval_expires_at < now,
        )
        .values(
            status=GatePassStatus.EXPIRED,
            final_approved_quantity=GatePass.total_picked_up,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    ).rowcount or 0

    expired = pending + approved
    if expired:
        for obj in list(db.identity_map.values()):
            if isinstance(obj, GatePass):
                db.expire(obj)
        logger.info('gate passes expired', extra={'pending_expired': pending, 'approved_expired': approved})
    return expired
