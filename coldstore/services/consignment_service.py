from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from coldstore.config import settings
from coldstore.errors import NotFoundError, ValidationError
from coldstore.models import Consignment, ConsignmentCategory
from coldstore.services.audit_service import log_action
from coldstore.timeutil import utcnow

logger = logging.getLogger(__name__)

CATEGORY_BASE_OFFSETS: dict[ConsignmentCategory, int] = {
    ConsignmentCategory.SEED: 1,
    ConsignmentCategory.SELL: 1501,
}


def parse_category(raw: str | ConsignmentCategory) -> ConsignmentCategory:
    try:
        return ConsignmentCategory(str(getattr(raw, 'value', raw)).strip().lower())
    except ValueError as exc:
        raise ValidationError("Category must be 'seed' or 'sell'") from exc


def next_sequence_number(
    category: ConsignmentCategory,
    *,
    existing_count: int,
    max_used: int | None = None,
    skip_ranges: Sequence[tuple[int, int]] = (),
) -> int:
    """Next number in a category's series.

    Without skip ranges the number is ``base + count of existing rows``, so
    deleting consignments changes future numbering. With skip ranges the
    highest number in use is the starting point and any number falling inside
    a range jumps past it.
    """
    base = CATEGORY_BASE_OFFSETS[category]
    if not skip_ranges:
        return base + existing_count

    next_num = (max_used if max_used is not None else base - 1) + 1
    moved = True
    while moved:
        moved = False
        for low, high in skip_ranges:
            if low <= next_num <= high:
                next_num = high + 1
                moved = True
                break
    return next_num


def format_consignment_code(category: ConsignmentCategory, sequence_number: int, expected_quantity: int) -> str:
    if category == ConsignmentCategory.SEED:
        return f'{sequence_number:04d}/{expected_quantity}'
    return f'{sequence_number}/{expected_quantity}'


def _skip_ranges_for(category: ConsignmentCategory) -> list[tuple[int, int]]:
    if category == ConsignmentCategory.SEED:
        return list(settings.seed_skip_ranges)
    return list(settings.sell_skip_ranges)


def count_by_category(db: Session, category: ConsignmentCategory) -> int:
    return db.execute(
        select(func.count(Consignment.id)).where(Consignment.category == category)
    ).scalar_one()


def create_consignment(
    db: Session,
    *,
    category: str | ConsignmentCategory,
    expected_quantity: int,
    customer_id: int | None,
    remark: str | None,
    actor_user_id: int | None,
    ip: str | None = None,
    skip_ranges: Sequence[tuple[int, int]] | None = None,
) -> Consignment:
    if expected_quantity < 1:
        raise ValidationError('Expected quantity must be at least 1')
    category = parse_category(category)
    ranges = _skip_ranges_for(category) if skip_ranges is None else list(skip_ranges)

    existing_count = count_by_category(db, category)
    max_used = None
    if ranges:
        max_used = db.execute(
            select(func.max(Consignment.sequence_number)).where(Consignment.category == category)
        ).scalar_one_or_none()
    number = next_sequence_number(category, existing_count=existing_count, max_used=max_used, skip_ranges=ranges)

    consignment = Consignment(
        code=format_consignment_code(category, number, expected_quantity),
        category=category,
        sequence_number=number,
        expected_quantity=expected_quantity,
        customer_id=customer_id,
        remark=(remark or '').strip(),
        created_by_user_id=actor_user_id,
    )
    db.add(consignment)
    db.flush()

    logger.info(
        'consignment created',
        extra={'consignment_code': consignment.code, 'category': category.value, 'expected_quantity': expected_quantity},
    )
    log_action(
        db,
        actor_user_id=actor_user_id,
        action='CREATE',
        target_type='consignment',
        target_id=consignment.id,
        description=f'Created consignment {consignment.code} ({category.value}, {expected_quantity} expected)',
        ip=ip,
    )
    return consignment


def get_consignment_by_code(db: Session, code: str) -> Consignment:
    consignment = db.execute(select(Consignment).where(Consignment.code == code.strip())).scalar_one_or_none()
    if not consignment:
        raise NotFoundError('Consignment', code)
    return consignment


def list_consignments(
    db: Session,
    *,
    category: ConsignmentCategory | None = None,
    customer_id: int | None = None,
    limit: int = 500,
) -> list[Consignment]:
    query = select(Consignment).order_by(Consignment.created_at.desc(), Consignment.id.desc()).limit(limit)
    if category:
        query = query.where(Consignment.category == category)
    if customer_id is not None:
        query = query.where(Consignment.customer_id == customer_id)
    return db.execute(query).scalars().all()


def update_consignment_remark(
    db: Session,
    *,
    code: str,
    remark: str,
    actor_user_id: int | None,
    ip: str | None = None,
) -> Consignment:
    consignment = get_consignment_by_code(db, code)
    consignment.remark = remark.strip()
    consignment.updated_at = utcnow()
    db.flush()
    log_action(
        db,
        actor_user_id=actor_user_id,
        action='UPDATE',
        target_type='consignment',
        target_id=consignment.id,
        description=f'Updated remark of consignment {consignment.code}',
        ip=ip,
    )
    return consignment
