"""Error types raised by the storage ledger and gate pass services.

Each error carries a machine-readable ``code``. They subclass ``ValueError``
so callers that only care about "the request could not be applied" can keep
catching that; routers map the concrete types to HTTP statuses.
"""

from __future__ import annotations


class ColdStoreError(ValueError):
    code: str = 'COLD_STORE_ERROR'


class ValidationError(ColdStoreError):
    """Input was rejected before touching the store."""

    code: str = 'VALIDATION_ERROR'


class NotFoundError(ColdStoreError):
    code: str = 'NOT_FOUND'

    def __init__(self, kind: str, key: object):
        self.kind = kind
        self.key = key
        super().__init__(f'{kind} {key} not found')


class ConflictError(ColdStoreError):
    """Request was well formed but the current state does not allow it."""

    code: str = 'CONFLICT'


class InsufficientStockError(ConflictError):
    code: str = 'INSUFFICIENT_STOCK'

    def __init__(self, consignment_code: str, room_no: str, floor: str, quantity: int):
        self.consignment_code = consignment_code
        self.room_no = room_no
        self.floor = floor
        self.quantity = quantity
        super().__init__(
            f'Insufficient stock for {consignment_code} in room {room_no}, floor {floor} '
            f'to withdraw {quantity}'
        )


class InvalidTransitionError(ConflictError):
    code: str = 'INVALID_TRANSITION'

    def __init__(self, gate_pass_id: int, status: str, action: str):
        self.gate_pass_id = gate_pass_id
        self.status = status
        self.action = action
        super().__init__(f'Gate pass {gate_pass_id} is {status} and cannot be {action}')


class ExpiredError(ConflictError):
    code: str = 'EXPIRED'

    def __init__(self, gate_pass_id: int, message: str):
        self.gate_pass_id = gate_pass_id
        super().__init__(message)
