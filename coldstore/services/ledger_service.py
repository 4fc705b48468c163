from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, aliased

from coldstore.errors import NotFoundError, ValidationError
from coldstore.models import AllocationEditLog, StorageAllocation
from coldstore.services.audit_service import log_action
from coldstore.services.consignment_service import get_consignment_by_code
from coldstore.services.gatar_service import clean_breakdown, clean_slots
from coldstore.timeutil import utcnow

logger = logging.getLogger(__name__)


def _clean_location(room_no: str, floor: str) -> tuple[str, str]:
    room_no = (room_no or '').strip()
    floor = (floor or '').strip()
    if not room_no or not floor:
        raise ValidationError('Room and floor are required')
    return room_no, floor


def _validate_breakdown_total(quantity: int, breakdown: list[int] | None) -> None:
    if breakdown is not None and sum(breakdown) != quantity:
        raise ValidationError(
            f'Breakdown total {sum(breakdown)} does not match quantity {quantity}'
        )


def record_placement(
    db: Session,
    *,
    consignment_code: str,
    room_no: str,
    floor: str,
    slots: Sequence[str] | str,
    quantity: int,
    breakdown: Sequence[int] | str | None = None,
    remark: str | None = None,
    actor_user_id: int | None,
    ip: str | None = None,
) -> StorageAllocation:
    if quantity <= 0:
        raise ValidationError('Quantity must be greater than zero')
    room_no, floor = _clean_location(room_no, floor)
    cleaned_slots = clean_slots(slots)
    cleaned_breakdown = clean_breakdown(breakdown)
    _validate_breakdown_total(quantity, cleaned_breakdown)

    consignment = get_consignment_by_code(db, consignment_code)
    allocation = StorageAllocation(
        consignment_id=consignment.id,
        consignment_code=consignment.code,
        room_no=room_no,
        floor=floor,
        slots=cleaned_slots,
        quantity=quantity,
        breakdown=cleaned_breakdown,
        remark=(remark or '').strip(),
        created_by_user_id=actor_user_id,
    )
    db.add(allocation)
    db.flush()

    logger.info(
        'placement recorded',
        extra={
            'consignment_code': consignment.code,
            'room_no': room_no,
            'floor': floor,
            'quantity': quantity,
        },
    )
    log_action(
        db,
        actor_user_id=actor_user_id,
        action='CREATE',
        target_type='storage_allocation',
        target_id=allocation.id,
        description=(
            f'Placed {quantity} of {consignment.code} in room {room_no}, floor {floor}, '
            f'gatar {", ".join(cleaned_slots)}'
        ),
        ip=ip,
    )
    return allocation


def total_quantity(db: Session, consignment_code: str) -> int:
    return db.execute(
        select(func.coalesce(func.sum(StorageAllocation.quantity), 0)).where(
            StorageAllocation.consignment_code == consignment_code
        )
    ).scalar_one()


def decrement(db: Session, *, consignment_code: str, room_no: str, floor: str, amount: int) -> int:
    """Take ``amount`` units out of one allocation row at (code, room, floor).

    Runs as a single conditional UPDATE against the oldest row at that location
    that still holds at least ``amount``; the guard is repeated on the outer
    statement so a concurrent decrement cannot drive the row negative. Returns
    the number of rows changed: 1 on success, 0 when no row had enough stock.
    """
    if amount <= 0:
        raise ValidationError('Amount must be greater than zero')

    row = aliased(StorageAllocation)
    candidate = (
        select(row.id)
        .where(
            row.consignment_code == consignment_code,
            row.room_no == room_no,
            row.floor == floor,
            row.quantity >= amount,
        )
        .order_by(row.id.asc())
        .limit(1)
        .scalar_subquery()
    )
    result = db.execute(
        update(StorageAllocation)
        .where(StorageAllocation.id == candidate, StorageAllocation.quantity >= amount)
        .values(quantity=StorageAllocation.quantity - amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    affected = result.rowcount or 0
    if affected:
        # keep already-loaded rows in step with the database
        for obj in list(db.identity_map.values()):
            if isinstance(obj, StorageAllocation) and obj.consignment_code == consignment_code:
                db.expire(obj, ['quantity', 'updated_at'])
    else:
        logger.warning(
            'ledger decrement guard failed',
            extra={'consignment_code': consignment_code, 'room_no': room_no, 'floor': floor, 'amount': amount},
        )
    return affected


def list_allocations(
    db: Session,
    *,
    consignment_code: str | None = None,
    room_no: str | None = None,
    floor: str | None = None,
) -> list[StorageAllocation]:
    query = select(StorageAllocation).order_by(StorageAllocation.created_at.asc(), StorageAllocation.id.asc())
    if consignment_code:
        query = query.where(StorageAllocation.consignment_code == consignment_code)
    if room_no:
        query = query.where(StorageAllocation.room_no == room_no)
    if floor:
        query = query.where(StorageAllocation.floor == floor)
    return db.execute(query).scalars().all()


def get_allocation(db: Session, allocation_id: int) -> StorageAllocation:
    allocation = db.execute(
        select(StorageAllocation).where(StorageAllocation.id == allocation_id)
    ).scalar_one_or_none()
    if not allocation:
        raise NotFoundError('Storage allocation', allocation_id)
    return allocation


def _snapshot(allocation: StorageAllocation) -> dict:
    return {
        'room_no': allocation.room_no,
        'floor': allocation.floor,
        'slots': list(allocation.slots or []),
        'quantity': allocation.quantity,
        'breakdown': list(allocation.breakdown) if allocation.breakdown else None,
        'remark': allocation.remark,
    }


def update_allocation(
    db: Session,
    *,
    allocation_id: int,
    room_no: str,
    floor: str,
    slots: Sequence[str] | str,
    quantity: int,
    breakdown: Sequence[int] | str | None,
    remark: str | None,
    actor_user_id: int | None,
    ip: str | None = None,
) -> StorageAllocation:
    """Replace every editable field of an allocation row (manual correction)."""
    if quantity < 0:
        raise ValidationError('Quantity cannot be negative')
    room_no, floor = _clean_location(room_no, floor)
    cleaned_slots = clean_slots(slots)
    cleaned_breakdown = clean_breakdown(breakdown)
    _validate_breakdown_total(quantity, cleaned_breakdown)

    allocation = db.execute(
        select(StorageAllocation).where(StorageAllocation.id == allocation_id).with_for_update()
    ).scalar_one_or_none()
    if not allocation:
        raise NotFoundError('Storage allocation', allocation_id)

    before = _snapshot(allocation)
    allocation.room_no = room_no
    allocation.floor = floor
    allocation.slots = cleaned_slots
    allocation.quantity = quantity
    allocation.breakdown = cleaned_breakdown
    allocation.remark = (remark or '').strip()
    allocation.updated_at = utcnow()
    after = _snapshot(allocation)

    db.add(
        AllocationEditLog(
            allocation_id=allocation.id,
            consignment_code=allocation.consignment_code,
            edited_by_user_id=actor_user_id,
            old_values=before,
            new_values=after,
        )
    )
    db.flush()

    changed = sorted(key for key in after if after[key] != before[key])
    log_action(
        db,
        actor_user_id=actor_user_id,
        action='UPDATE',
        target_type='storage_allocation',
        target_id=allocation.id,
        description=f'Edited allocation {allocation.id} of {allocation.consignment_code}: {", ".join(changed) or "no changes"}',
        ip=ip,
        metadata={'changed': changed},
    )
    return allocation


def delete_allocation(db: Session, *, allocation_id: int, actor_user_id: int | None, ip: str | None = None) -> None:
    allocation = get_allocation(db, allocation_id)
    description = (
        f'Deleted allocation {allocation.id} of {allocation.consignment_code} '
        f'({allocation.quantity} in room {allocation.room_no}, floor {allocation.floor})'
    )
    db.delete(allocation)
    db.flush()
    log_action(
        db,
        actor_user_id=actor_user_id,
        action='DELETE',
        target_type='storage_allocation',
        target_id=allocation_id,
        description=description,
        ip=ip,
    )


def list_edit_logs(db: Session, *, allocation_id: int | None = None, limit: int = 200) -> list[AllocationEditLog]:
    query = select(AllocationEditLog).order_by(AllocationEditLog.created_at.desc(), AllocationEditLog.id.desc()).limit(limit)
    if allocation_id is not None:
        query = query.where(AllocationEditLog.allocation_id == allocation_id)
    return db.execute(query).scalars().all()
