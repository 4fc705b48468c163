from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator

from coldstore.services.gatar_service import format_list, parse_breakdown, parse_slots


class DelimitedList(TypeDecorator):
    """Ordered list stored in the legacy comma separated text form.

    ``item_type=str`` is used for gatar numbers ("112, 114, 129"),
    ``item_type=int`` for per-gatar quantity breakdowns ("200, 200, 100").
    An empty list round-trips as NULL.
    """

    impl = Text
    cache_ok = True

    def __init__(self, item_type: type = str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.item_type = item_type

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = self._parse(value)
        if not value:
            return None
        return format_list(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return [] if self.item_type is str else None
        parsed = self._parse(value)
        if self.item_type is str:
            return parsed
        return parsed or None

    def _parse(self, raw: str) -> list:
        if self.item_type is int:
            return parse_breakdown(raw)
        return parse_slots(raw)
