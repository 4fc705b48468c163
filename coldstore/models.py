from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from coldstore.db_types import DelimitedList

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


def _enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [member.value for member in members])


class UserRole(str, Enum):
    ADMIN = 'admin'
    EMPLOYEE = 'employee'
    GUARD = 'guard'
    CUSTOMER = 'customer'


class ConsignmentCategory(str, Enum):
    SEED = 'seed'
    SELL = 'sell'


class GatePassStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    PARTIALLY_COMPLETED = 'partially_completed'
    COMPLETED = 'completed'
    REJECTED = 'rejected'
    EXPIRED = 'expired'


TERMINAL_GATE_PASS_STATUSES = frozenset(
    {GatePassStatus.COMPLETED, GatePassStatus.REJECTED, GatePassStatus.EXPIRED}
)
PICKUP_ELIGIBLE_STATUSES = frozenset({GatePassStatus.APPROVED, GatePassStatus.PARTIALLY_COMPLETED})


class RequestSource(str, Enum):
    EMPLOYEE = 'employee'
    CUSTOMER_PORTAL = 'customer_portal'


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    username: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, 'user_role'), nullable=False)
    customer_id: Mapped[int | None] = mapped_column(BigInteger)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('users.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Consignment(Base):
    __tablename__ = 'consignments'
    __table_args__ = (
        UniqueConstraint('code', name='consignments_code_key'),
        CheckConstraint('expected_quantity > 0', name='consignments_expected_positive_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[ConsignmentCategory] = mapped_column(
        _enum(ConsignmentCategory, 'consignment_category'), nullable=False
    )
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    expected_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_id: Mapped[int | None] = mapped_column(BigInteger)
    remark: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    created_by_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class StorageAllocation(Base):
    __tablename__ = 'storage_allocations'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='storage_allocations_non_negative_ck'),
        Index('ix_storage_allocations_location', 'consignment_code', 'room_no', 'floor'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    consignment_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('consignments.id', ondelete='CASCADE'), nullable=False
    )
    consignment_code: Mapped[str] = mapped_column(String(50), nullable=False)
    room_no: Mapped[str] = mapped_column(String(10), nullable=False)
    floor: Mapped[str] = mapped_column(String(10), nullable=False)
    slots: Mapped[list[str]] = mapped_column('gate_no', DelimitedList(str), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    breakdown: Mapped[list[int] | None] = mapped_column('quantity_breakdown', DelimitedList(int))
    remark: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    created_by_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AllocationEditLog(Base):
    __tablename__ = 'allocation_edit_logs'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    allocation_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    consignment_code: Mapped[str] = mapped_column(String(50), nullable=False)
    edited_by_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    old_values: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    new_values: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GatePass(Base):
    __tablename__ = 'gate_passes'
    __table_args__ = (
        CheckConstraint('requested_quantity > 0', name='gate_passes_requested_positive_ck'),
        CheckConstraint('total_picked_up >= 0', name='gate_passes_picked_non_negative_ck'),
        Index('ix_gate_passes_status', 'status'),
        Index('ix_gate_passes_consignment_code', 'consignment_code'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    consignment_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('consignments.id'), nullable=False)
    consignment_code: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[int | None] = mapped_column(BigInteger)
    requested_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_quantity: Mapped[int | None] = mapped_column(Integer)
    final_approved_quantity: Mapped[int | None] = mapped_column(Integer)
    gate_no: Mapped[str | None] = mapped_column(String(50))
    status: Mapped[GatePassStatus] = mapped_column(
        _enum(GatePassStatus, 'gate_pass_status'),
        nullable=False,
        default=GatePassStatus.PENDING,
        server_default=GatePassStatus.PENDING.value,
    )
    payment_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    total_picked_up: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    request_source: Mapped[RequestSource] = mapped_column(
        _enum(RequestSource, 'gate_pass_request_source'),
        nullable=False,
        default=RequestSource.EMPLOYEE,
        server_default=RequestSource.EMPLOYEE.value,
    )
    issued_by_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    approved_by_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    remarks: Mapped[str | None] = mapped_column(Text)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approval_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GatePassPickup(Base):
    __tablename__ = 'gate_pass_pickups'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='gate_pass_pickups_quantity_positive_ck'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    gate_pass_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('gate_passes.id', ondelete='CASCADE'), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    room_no: Mapped[str] = mapped_column(String(10), nullable=False)
    floor: Mapped[str] = mapped_column(String(10), nullable=False)
    slot: Mapped[str | None] = mapped_column('gatar_no', String(50))
    remarks: Mapped[str | None] = mapped_column(Text)
    picked_up_by_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AdminActionLog(Base):
    __tablename__ = 'admin_action_logs'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('users.id'))
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    target_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[int | None] = mapped_column(BigInteger)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
