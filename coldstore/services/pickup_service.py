from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from coldstore.errors import (
    ConflictError,
    ExpiredError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from coldstore.models import PICKUP_ELIGIBLE_STATUSES, GatePass, GatePassPickup, GatePassStatus
from coldstore.services import expiry_service, ledger_service
from coldstore.services.audit_service import log_action
from coldstore.services.gate_pass_service import get_gate_pass
from coldstore.timeutil import is_past, utcnow

logger = logging.getLogger(__name__)


def _resolve_location(db: Session, *, consignment_code: str, quantity: int) -> tuple[str, str]:
    allocations = ledger_service.list_allocations(db, consignment_code=consignment_code)
    if not allocations:
        raise NotFoundError('Storage location for consignment', consignment_code)
    for allocation in allocations:
        if allocation.quantity >= quantity:
            return allocation.room_no, allocation.floor
    return allocations[0].room_no, allocations[0].floor


def picked_up_total(db: Session, gate_pass_id: int) -> int:
    return db.execute(
        select(func.coalesce(func.sum(GatePassPickup.quantity), 0)).where(GatePassPickup.gate_pass_id == gate_pass_id)
    ).scalar_one()


def record_pickup(
    db: Session,
    *,
    gate_pass_id: int,
    quantity: int,
    room_no: str | None,
    floor: str | None,
    slot: str | None,
    actor_user_id: int | None,
    remarks: str | None = None,
    ip: str | None = None,
    now: datetime | None = None,
) -> GatePassPickup:
    """Apply one physical withdrawal against an approved gate pass.

    Every check runs before the ledger is touched. The ledger decrement, the
    pickup row and the pass update share the caller's transaction; the caller
    commits once after this returns, or rolls back on any error.
    """
    if quantity <= 0:
        raise ValidationError('Pickup quantity must be greater than zero')

    now = now or utcnow()
    expiry_service.sweep(db, now)

    gate_pass: GatePass = get_gate_pass(db, gate_pass_id, for_update=True)
    if gate_pass.status not in PICKUP_ELIGIBLE_STATUSES:
        raise InvalidTransitionError(gate_pass.id, gate_pass.status.value, 'picked up against')
    if is_past(gate_pass.approval_expires_at, now):
        raise ExpiredError(gate_pass.id, f'Gate pass {gate_pass.id} has expired - pickup window closed')

    # approved_quantity is informational; completion is measured against requested_quantity
    remaining = gate_pass.requested_quantity - gate_pass.total_picked_up
    if quantity > remaining:
        raise ConflictError(f'Pickup quantity {quantity} exceeds remaining quantity {remaining}')

    room_no = (room_no or '').strip()
    floor = (floor or '').strip()
    if not room_no or not floor:
        room_no, floor = _resolve_location(db, consignment_code=gate_pass.consignment_code, quantity=quantity)

    affected = ledger_service.decrement(
        db,
        consignment_code=gate_pass.consignment_code,
        room_no=room_no,
        floor=floor,
        amount=quantity,
    )
    if not affected:
        raise InsufficientStockError(gate_pass.consignment_code, room_no, floor, quantity)

    pickup = GatePassPickup(
        gate_pass_id=gate_pass.id,
        quantity=quantity,
        room_no=room_no,
        floor=floor,
        slot=slot.strip() if slot and slot.strip() else None,
        remarks=remarks.strip() if remarks and remarks.strip() else None,
        picked_up_by_user_id=actor_user_id,
        created_at=now,
    )
    db.add(pickup)
    db.flush()

    total = picked_up_total(db, gate_pass.id)
    gate_pass.total_picked_up = total
    if total >= gate_pass.requested_quantity:
        gate_pass.status = GatePassStatus.COMPLETED
        gate_pass.completed_at = now
    elif total > 0:
        gate_pass.status = GatePassStatus.PARTIALLY_COMPLETED
    gate_pass.updated_at = now
    db.flush()

    logger.info(
        'pickup recorded',
        extra={
            'gate_pass_id': gate_pass.id,
            'quantity': quantity,
            'room_no': room_no,
            'floor': floor,
            'total_picked_up': total,
            'status': gate_pass.status.value,
        },
    )
    log_action(
        db,
        actor_user_id=actor_user_id,
        action='PICKUP',
        target_type='gate_pass',
        target_id=gate_pass.id,
        description=(
            f'Picked up {quantity} of {gate_pass.consignment_code} from room {room_no}, floor {floor} '
            f'against gate pass {gate_pass.id} ({total}/{gate_pass.requested_quantity})'
        ),
        ip=ip,
    )
    return pickup
