from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy import Text, func, select, type_coerce
from sqlalchemy.orm import Session

from coldstore.models import Consignment, StorageAllocation
from coldstore.services.gatar_service import distribute


@dataclass
class GatarItem:
    allocation_id: int
    consignment_code: str
    quantity: int
    variety: str


@dataclass
class GatarInfo:
    gatar: str
    items: list[GatarItem] = field(default_factory=list)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


def allocation_slot_quantities(allocation: StorageAllocation) -> list[tuple[str, int]]:
    """Per-gatar quantities for one allocation row.

    A stored breakdown is only trusted while it still adds up to the row's
    quantity; once pickups have reduced the row the even split is used.
    """
    slots = list(allocation.slots or [])
    breakdown = allocation.breakdown
    if breakdown and sum(breakdown) != allocation.quantity:
        breakdown = None
    return list(zip(slots, distribute(allocation.quantity, slots, breakdown)))


def _sort_key(gatar: str) -> tuple[int, int | str]:
    if gatar.isdigit():
        return (0, int(gatar))
    return (1, gatar)


def floor_occupancy(db: Session, *, room_no: str, floor: str) -> list[GatarInfo]:
    rows = db.execute(
        select(StorageAllocation, Consignment.remark)
        .join(Consignment, Consignment.id == StorageAllocation.consignment_id, isouter=True)
        .where(
            StorageAllocation.room_no == room_no,
            StorageAllocation.floor == floor,
            StorageAllocation.quantity > 0,
        )
        .order_by(StorageAllocation.created_at.desc(), StorageAllocation.id.desc())
    ).all()

    by_gatar: dict[str, GatarInfo] = {}
    for allocation, variety in rows:
        for gatar, qty in allocation_slot_quantities(allocation):
            info = by_gatar.setdefault(gatar, GatarInfo(gatar=gatar))
            info.items.append(
                GatarItem(
                    allocation_id=allocation.id,
                    consignment_code=allocation.consignment_code,
                    quantity=qty,
                    variety=variety or '',
                )
            )
    return [by_gatar[key] for key in sorted(by_gatar, key=_sort_key)]


def slot_details(db: Session, *, gatar: str) -> list[dict]:
    gatar = gatar.strip()
    rows = db.execute(
        select(StorageAllocation, Consignment.remark, Consignment.customer_id)
        .join(Consignment, Consignment.id == StorageAllocation.consignment_id, isouter=True)
        .where(type_coerce(StorageAllocation.slots, Text).contains(gatar))
        .order_by(StorageAllocation.created_at.desc(), StorageAllocation.id.desc())
    ).all()

    details = []
    for allocation, variety, customer_id in rows:
        quantities = dict(allocation_slot_quantities(allocation))
        if gatar not in quantities:
            continue
        details.append(
            {
                'allocation_id': allocation.id,
                'consignment_code': allocation.consignment_code,
                'room_no': allocation.room_no,
                'floor': allocation.floor,
                'gatars': list(allocation.slots),
                'quantity': allocation.quantity,
                'distributed_quantity': quantities[gatar],
                'breakdown': allocation.breakdown,
                'variety': variety or '',
                'customer_id': customer_id,
                'remark': allocation.remark,
            }
        )
    return details


def room_summary(db: Session) -> list[dict]:
    rows = db.execute(
        select(
            StorageAllocation.room_no,
            StorageAllocation.floor,
            func.coalesce(func.sum(StorageAllocation.quantity), 0).label('total_quantity'),
            func.count(StorageAllocation.id).label('allocation_count'),
        )
        .group_by(StorageAllocation.room_no, StorageAllocation.floor)
        .order_by(StorageAllocation.room_no.asc(), StorageAllocation.floor.asc())
    ).all()

    occupied: dict[tuple[str, str], set[str]] = defaultdict(set)
    for allocation in db.execute(select(StorageAllocation).where(StorageAllocation.quantity > 0)).scalars():
        occupied[(allocation.room_no, allocation.floor)].update(allocation.slots or [])

    return [
        {
            'room_no': row.room_no,
            'floor': row.floor,
            'total_quantity': row.total_quantity,
            'allocation_count': row.allocation_count,
            'occupied_gatars': len(occupied[(row.room_no, row.floor)]),
        }
        for row in rows
    ]
