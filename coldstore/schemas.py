from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from coldstore.models import ConsignmentCategory, GatePassStatus, RequestSource


class LoginRequest(BaseModel):
    username: str
    password: str


class ConsignmentCreate(BaseModel):
    category: ConsignmentCategory
    expected_quantity: int
    customer_id: int | None = None
    remark: str | None = None


class ConsignmentRemarkUpdate(BaseModel):
    remark: str


class ConsignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    category: ConsignmentCategory
    sequence_number: int
    expected_quantity: int
    customer_id: int | None
    remark: str
    created_at: datetime


class PlacementCreate(BaseModel):
    consignment_code: str
    room_no: str
    floor: str
    slots: list[str] | str
    quantity: int
    breakdown: list[int] | str | None = None
    remark: str | None = None


class AllocationUpdate(BaseModel):
    room_no: str
    floor: str
    slots: list[str] | str
    quantity: int
    breakdown: list[int] | str | None = None
    remark: str | None = None


class AllocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    consignment_code: str
    room_no: str
    floor: str
    slots: list[str]
    quantity: int
    breakdown: list[int] | None
    remark: str
    created_at: datetime
    updated_at: datetime


class ConsignmentDetail(BaseModel):
    consignment: ConsignmentOut
    total_quantity: int
    allocations: list[AllocationOut]


class AllocationEditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    allocation_id: int
    consignment_code: str
    edited_by_user_id: int | None
    old_values: dict
    new_values: dict
    created_at: datetime


class GatePassCreate(BaseModel):
    consignment_code: str
    requested_quantity: int
    customer_id: int | None = None
    payment_verified: bool = False
    payment_amount: Decimal | None = None
    remarks: str | None = None


class GatePassApprove(BaseModel):
    approved_quantity: int
    gate_no: str
    remarks: str | None = None


class GatePassReject(BaseModel):
    reason: str


class PickupCreate(BaseModel):
    quantity: int
    room_no: str | None = None
    floor: str | None = None
    slot: str | None = None
    remarks: str | None = None


class GatePassOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    consignment_code: str
    customer_id: int | None
    requested_quantity: int
    approved_quantity: int | None
    final_approved_quantity: int | None
    gate_no: str | None
    status: GatePassStatus
    payment_verified: bool
    payment_amount: Decimal | None
    total_picked_up: int
    request_source: RequestSource
    remarks: str | None
    issued_at: datetime
    expires_at: datetime | None
    approval_expires_at: datetime | None
    completed_at: datetime | None


class PendingGatePassOut(BaseModel):
    gate_pass: GatePassOut
    hours_remaining: float | None


class PickupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    gate_pass_id: int
    quantity: int
    room_no: str
    floor: str
    slot: str | None
    remarks: str | None
    picked_up_by_user_id: int | None
    created_at: datetime


class SweepResult(BaseModel):
    expired: int = Field(ge=0)


class GatarItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allocation_id: int
    consignment_code: str
    quantity: int
    variety: str


class GatarInfoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gatar: str
    items: list[GatarItemOut]
    total_quantity: int


class AdminActionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_user_id: int | None
    action: str
    target_type: str
    target_id: int | None
    description: str
    created_at: datetime
