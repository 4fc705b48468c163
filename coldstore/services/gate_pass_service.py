from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from coldstore.config import settings
from coldstore.errors import ConflictError, ExpiredError, InvalidTransitionError, NotFoundError, ValidationError
from coldstore.models import GatePass, GatePassPickup, GatePassStatus, RequestSource
from coldstore.services import expiry_service, ledger_service
from coldstore.services.audit_service import log_action
from coldstore.services.consignment_service import get_consignment_by_code
from coldstore.timeutil import ensure_utc, is_past, utcnow

logger = logging.getLogger(__name__)


def issue_window() -> timedelta:
    return timedelta(hours=settings.gate_pass_issue_window_hours)


def pickup_window() -> timedelta:
    return timedelta(hours=settings.gate_pass_pickup_window_hours)


OPEN_GATE_PASS_STATUSES = (GatePassStatus.PENDING, GatePassStatus.APPROVED, GatePassStatus.PARTIALLY_COMPLETED)


def outstanding_quantity(db: Session, consignment_code: str, *, exclude_id: int | None = None) -> int:
    """Units open passes can still withdraw: requested minus already picked up."""
    query = select(func.coalesce(func.sum(GatePass.requested_quantity - GatePass.total_picked_up), 0)).where(
        GatePass.consignment_code == consignment_code,
        GatePass.status.in_(OPEN_GATE_PASS_STATUSES),
    )
    if exclude_id is not None:
        query = query.where(GatePass.id != exclude_id)
    return db.execute(query).scalar_one()


def available_quantity(db: Session, consignment_code: str, *, exclude_id: int | None = None) -> int:
    in_stock = ledger_service.total_quantity(db, consignment_code)
    return max(in_stock - outstanding_quantity(db, consignment_code, exclude_id=exclude_id), 0)


def get_gate_pass(db: Session, gate_pass_id: int, *, for_update: bool = False) -> GatePass:
    query = select(GatePass).where(GatePass.id == gate_pass_id)
    if for_update:
        query = query.with_for_update()
    gate_pass = db.execute(query).scalar_one_or_none()
    if not gate_pass:
        raise NotFoundError('Gate pass', gate_pass_id)
    return gate_pass


def create_gate_pass(
    db: Session,
    *,
    consignment_code: str,
    requested_quantity: int,
    actor_user_id: int | None,
    customer_id: int | None = None,
    payment_verified: bool = False,
    payment_amount: Decimal | None = None,
    remarks: str | None = None,
    request_source: RequestSource = RequestSource.EMPLOYEE,
    ip: str | None = None,
    now: datetime | None = None,
) -> GatePass:
    if requested_quantity <= 0:
        raise ValidationError('Requested quantity must be greater than zero')
    if request_source == RequestSource.EMPLOYEE and not payment_verified:
        raise ValidationError('Payment must be verified before issuing a gate pass')

    now = now or utcnow()
    consignment = get_consignment_by_code(db, consignment_code)
    # lapsed passes must not keep holding stock
    expiry_service.sweep(db, now)
    available = available_quantity(db, consignment.code)
    if requested_quantity > available:
        raise ConflictError(
            f'Requested quantity {requested_quantity} exceeds available stock ({available}) for {consignment.code}'
        )

    gate_pass = GatePass(
        consignment_id=consignment.id,
        consignment_code=consignment.code,
        customer_id=customer_id if customer_id is not None else consignment.customer_id,
        requested_quantity=requested_quantity,
        status=GatePassStatus.PENDING,
        payment_verified=payment_verified,
        payment_amount=payment_amount,
        total_picked_up=0,
        request_source=request_source,
        issued_by_user_id=actor_user_id if request_source == RequestSource.EMPLOYEE else None,
        remarks=remarks.strip() if remarks and remarks.strip() else None,
        issued_at=now,
        expires_at=now + issue_window(),
        created_at=now,
        updated_at=now,
    )
    db.add(gate_pass)
    db.flush()

    logger.info(
        'gate pass issued',
        extra={'gate_pass_id': gate_pass.id, 'consignment_code': consignment.code, 'requested_quantity': requested_quantity},
    )
    log_action(
        db,
        actor_user_id=actor_user_id,
        action='CREATE',
        target_type='gate_pass',
        target_id=gate_pass.id,
        description=f'Gate pass {gate_pass.id} issued for {requested_quantity} of {consignment.code}',
        ip=ip,
        metadata={'request_source': request_source.value},
    )
    return gate_pass


def approve_gate_pass(
    db: Session,
    *,
    gate_pass_id: int,
    approved_quantity: int,
    gate_no: str,
    approver_user_id: int,
    remarks: str | None = None,
    ip: str | None = None,
    now: datetime | None = None,
) -> GatePass:
    """Move a pending pass to approved and open its pickup window.

    Approval does not hold stock; two approved passes may together exceed
    what a location holds, and the loser finds out at pickup time.
    """
    now = now or utcnow()
    gate_pass = get_gate_pass(db, gate_pass_id, for_update=True)
    if gate_pass.status != GatePassStatus.PENDING:
        raise InvalidTransitionError(gate_pass.id, gate_pass.status.value, 'approved')
    if is_past(gate_pass.expires_at, now):
        raise ExpiredError(gate_pass.id, f'Gate pass {gate_pass.id} has expired - not approved within the issue window')
    if approved_quantity <= 0:
        raise ValidationError('Approved quantity must be greater than zero')
    if approved_quantity > gate_pass.requested_quantity:
        raise ValidationError('Approved quantity cannot exceed the requested quantity')
    gate_no = (gate_no or '').strip()
    if not gate_no:
        raise ValidationError('Gate number is required')

    available = available_quantity(db, gate_pass.consignment_code, exclude_id=gate_pass.id)
    if approved_quantity > available:
        raise ConflictError(
            f'Approved quantity {approved_quantity} exceeds available stock ({available}) for {gate_pass.consignment_code}'
        )

    gate_pass.approved_quantity = approved_quantity
    gate_pass.final_approved_quantity = approved_quantity
    gate_pass.gate_no = gate_no
    gate_pass.approved_by_user_id = approver_user_id
    gate_pass.status = GatePassStatus.APPROVED
    gate_pass.approval_expires_at = now + pickup_window()
    gate_pass.updated_at = now
    if remarks and remarks.strip():
        gate_pass.remarks = remarks.strip()
    db.flush()

    logger.info(
        'gate pass approved',
        extra={'gate_pass_id': gate_pass.id, 'approved_quantity': approved_quantity, 'gate_no': gate_no},
    )
    log_action(
        db,
        actor_user_id=approver_user_id,
        action='APPROVE',
        target_type='gate_pass',
        target_id=gate_pass.id,
        description=f'Gate pass {gate_pass.id} approved for {approved_quantity} at gate {gate_no}',
        ip=ip,
    )
    return gate_pass


def reject_gate_pass(
    db: Session,
    *,
    gate_pass_id: int,
    reason: str,
    actor_user_id: int,
    ip: str | None = None,
    now: datetime | None = None,
) -> GatePass:
    reason = (reason or '').strip()
    if not reason:
        raise ValidationError('A rejection reason is required')

    now = now or utcnow()
    gate_pass = get_gate_pass(db, gate_pass_id, for_update=True)
    if gate_pass.status != GatePassStatus.PENDING:
        raise InvalidTransitionError(gate_pass.id, gate_pass.status.value, 'rejected')

    gate_pass.status = GatePassStatus.REJECTED
    gate_pass.remarks = reason
    gate_pass.approved_by_user_id = actor_user_id
    gate_pass.updated_at = now
    db.flush()

    logger.info('gate pass rejected', extra={'gate_pass_id': gate_pass.id})
    log_action(
        db,
        actor_user_id=actor_user_id,
        action='REJECT',
        target_type='gate_pass',
        target_id=gate_pass.id,
        description=f'Gate pass {gate_pass.id} rejected: {reason}',
        ip=ip,
    )
    return gate_pass


def list_gate_passes(
    db: Session,
    *,
    status: GatePassStatus | None = None,
    consignment_code: str | None = None,
    customer_id: int | None = None,
    limit: int = 500,
    now: datetime | None = None,
) -> list[GatePass]:
    expiry_service.sweep(db, now)

    conditions = []
    if status:
        conditions.append(GatePass.status == status)
    if consignment_code:
        conditions.append(GatePass.consignment_code == consignment_code)
    if customer_id is not None:
        conditions.append(GatePass.customer_id == customer_id)

    query = select(GatePass).order_by(GatePass.issued_at.desc(), GatePass.id.desc()).limit(limit)
    if conditions:
        query = query.where(and_(*conditions))
    return db.execute(query).scalars().all()


def list_pending_gate_passes(db: Session, *, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    rows = list_gate_passes(db, status=GatePassStatus.PENDING, now=now)
    return [
        {
            'gate_pass': row,
            'hours_remaining': _hours_until(row.expires_at, now),
        }
        for row in reversed(rows)
    ]


def _hours_until(deadline: datetime | None, now: datetime) -> float | None:
    if deadline is None:
        return None
    return round((ensure_utc(deadline) - now).total_seconds() / 3600, 2)


def list_expired_gate_passes(db: Session, *, now: datetime | None = None) -> list[GatePass]:
    """Passes that expired within the last ``expired_log_days`` days, for the admin log."""
    now = now or utcnow()
    expiry_service.sweep(db, now)
    since = now - timedelta(days=settings.expired_log_days)
    return db.execute(
        select(GatePass)
        .where(GatePass.status == GatePassStatus.EXPIRED, GatePass.updated_at > since)
        .order_by(GatePass.updated_at.desc(), GatePass.id.desc())
    ).scalars().all()


def list_pickups(db: Session, gate_pass_id: int) -> list[GatePassPickup]:
    get_gate_pass(db, gate_pass_id)
    return db.execute(
        select(GatePassPickup)
        .where(GatePassPickup.gate_pass_id == gate_pass_id)
        .order_by(GatePassPickup.created_at.asc(), GatePassPickup.id.asc())
    ).scalars().all()
