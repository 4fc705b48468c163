from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from coldstore.errors import ValidationError

GATAR_CAPACITY = 200

SPLIT_RE = re.compile(r'\s*,\s*')


def parse_slots(raw: str | None) -> list[str]:
    """Split a comma separated gatar list ("112, 114, 129") into clean tokens."""
    if not raw:
        return []
    return [token.strip() for token in SPLIT_RE.split(raw.strip()) if token.strip()]


def parse_breakdown(raw: str | None) -> list[int]:
    """Parse a comma separated per-gatar quantity list. Non-numeric tokens are skipped."""
    if not raw:
        return []
    values: list[int] = []
    for token in SPLIT_RE.split(raw.strip()):
        token = token.strip()
        if not token:
            continue
        try:
            values.append(int(token))
        except ValueError:
            continue
    return values


def format_list(values: Iterable[object]) -> str:
    return ', '.join(str(value) for value in values)


def clean_slots(slots: Sequence[str] | str) -> list[str]:
    if isinstance(slots, str):
        cleaned = parse_slots(slots)
    else:
        cleaned = [str(slot).strip() for slot in slots]
    if not cleaned or any(not slot for slot in cleaned):
        raise ValidationError('Slot list must contain at least one non-empty gatar number')
    if any(',' in slot for slot in cleaned):
        raise ValidationError('Gatar numbers cannot contain commas')
    return cleaned


def clean_breakdown(breakdown: Sequence[int] | str | None) -> list[int] | None:
    if breakdown is None:
        return None
    if isinstance(breakdown, str):
        values = parse_breakdown(breakdown)
    else:
        values = [int(value) for value in breakdown]
    if any(value < 0 for value in values):
        raise ValidationError('Breakdown quantities cannot be negative')
    return values or None


def _fill_sequentially(breakdown: Sequence[int], slot_count: int) -> list[int]:
    result = [0] * slot_count
    current = 0
    for bags in breakdown:
        remaining = bags
        while remaining > 0:
            if current == slot_count - 1:
                # last gatar takes whatever is left
                result[current] += remaining
                break
            room = GATAR_CAPACITY - result[current]
            if room <= 0:
                current += 1
                continue
            placed = min(room, remaining)
            result[current] += placed
            remaining -= placed
        if current < slot_count - 1 and result[current] >= GATAR_CAPACITY:
            current += 1
    return result


def distribute(total_quantity: int, slots: Sequence[str], breakdown: Sequence[int] | None = None) -> list[int]:
    """Reconstruct how many units of an allocation row sit in each gatar.

    Rules in priority order:

    1. a single gatar holds the whole quantity;
    2. a breakdown with one value per gatar maps positionally;
    3. a breakdown longer than the gatar list is poured in order, filling each
       gatar up to ``GATAR_CAPACITY`` before spilling into the next, and the
       last gatar absorbs any overflow;
    4. otherwise the quantity is split evenly, the remainder going one unit at
       a time to the first gatars.
    """
    slot_count = len(slots)
    if slot_count == 0:
        return []
    if slot_count == 1:
        return [total_quantity]

    values = list(breakdown or [])
    if len(values) == slot_count:
        return values
    if len(values) > slot_count:
        return _fill_sequentially(values, slot_count)

    base, remainder = divmod(total_quantity, slot_count)
    return [base + 1 if idx < remainder else base for idx in range(slot_count)]
