from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from coldstore.auth import STAFF_ROLES, Principal, Role, assert_customer_scope, get_current_principal, require_role
from coldstore.db import get_db
from coldstore.dependencies import get_client_ip, http_error
from coldstore.errors import ColdStoreError
from coldstore.models import GatePassStatus, RequestSource
from coldstore.schemas import (
    GatePassApprove,
    GatePassCreate,
    GatePassOut,
    GatePassReject,
    PendingGatePassOut,
    PickupCreate,
    PickupOut,
    SweepResult,
)
from coldstore.services import expiry_service, gate_pass_service, pickup_service
from coldstore.services.consignment_service import get_consignment_by_code

router = APIRouter(prefix='/api/gate-passes', tags=['gate-passes'])

APPROVER_ROLES = (Role.ADMIN, Role.EMPLOYEE)


@router.post('', response_model=GatePassOut, status_code=201)
def create_gate_pass(
    payload: GatePassCreate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        if principal.role == Role.CUSTOMER:
            consignment = get_consignment_by_code(db, payload.consignment_code)
            assert_customer_scope(principal, consignment.customer_id)
            gate_pass = gate_pass_service.create_gate_pass(
                db,
                consignment_code=consignment.code,
                requested_quantity=payload.requested_quantity,
                actor_user_id=principal.id,
                customer_id=principal.customer_id,
                remarks=payload.remarks,
                request_source=RequestSource.CUSTOMER_PORTAL,
                ip=get_client_ip(request),
            )
        else:
            gate_pass = gate_pass_service.create_gate_pass(
                db,
                consignment_code=payload.consignment_code,
                requested_quantity=payload.requested_quantity,
                actor_user_id=principal.id,
                customer_id=payload.customer_id,
                payment_verified=payload.payment_verified,
                payment_amount=payload.payment_amount,
                remarks=payload.remarks,
                request_source=RequestSource.EMPLOYEE,
                ip=get_client_ip(request),
            )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()
    return gate_pass


@router.get('', response_model=list[GatePassOut])
def list_gate_passes(
    status: GatePassStatus | None = None,
    consignment_code: str | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    customer_id = None
    if principal.role == Role.CUSTOMER:
        assert_customer_scope(principal, principal.customer_id)
        customer_id = principal.customer_id
    rows = gate_pass_service.list_gate_passes(
        db, status=status, consignment_code=consignment_code, customer_id=customer_id
    )
    db.commit()
    return rows


@router.get('/pending', response_model=list[PendingGatePassOut])
def list_pending(
    principal: Principal = Depends(require_role(*STAFF_ROLES)),
    db: Session = Depends(get_db),
):
    rows = gate_pass_service.list_pending_gate_passes(db)
    db.commit()
    return rows


@router.get('/expired', response_model=list[GatePassOut])
def list_expired(
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    rows = gate_pass_service.list_expired_gate_passes(db)
    db.commit()
    return rows


@router.post('/sweep', response_model=SweepResult)
def sweep_expired(
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    expired = expiry_service.sweep(db)
    db.commit()
    return {'expired': expired}


@router.get('/{gate_pass_id}', response_model=GatePassOut)
def get_gate_pass(
    gate_pass_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        gate_pass = gate_pass_service.get_gate_pass(db, gate_pass_id)
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    assert_customer_scope(principal, gate_pass.customer_id)
    return gate_pass


@router.post('/{gate_pass_id}/approve', response_model=GatePassOut)
def approve_gate_pass(
    gate_pass_id: int,
    payload: GatePassApprove,
    request: Request,
    principal: Principal = Depends(require_role(*APPROVER_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        gate_pass = gate_pass_service.approve_gate_pass(
            db,
            gate_pass_id=gate_pass_id,
            approved_quantity=payload.approved_quantity,
            gate_no=payload.gate_no,
            approver_user_id=principal.id,
            remarks=payload.remarks,
            ip=get_client_ip(request),
        )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()
    return gate_pass


@router.post('/{gate_pass_id}/reject', response_model=GatePassOut)
def reject_gate_pass(
    gate_pass_id: int,
    payload: GatePassReject,
    request: Request,
    principal: Principal = Depends(require_role(*APPROVER_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        gate_pass = gate_pass_service.reject_gate_pass(
            db,
            gate_pass_id=gate_pass_id,
            reason=payload.reason,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()
    return gate_pass


@router.post('/{gate_pass_id}/pickups', response_model=PickupOut, status_code=201)
def record_pickup(
    gate_pass_id: int,
    payload: PickupCreate,
    request: Request,
    principal: Principal = Depends(require_role(*STAFF_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        pickup = pickup_service.record_pickup(
            db,
            gate_pass_id=gate_pass_id,
            quantity=payload.quantity,
            room_no=payload.room_no,
            floor=payload.floor,
            slot=payload.slot,
            actor_user_id=principal.id,
            remarks=payload.remarks,
            ip=get_client_ip(request),
        )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()
    return pickup


@router.get('/{gate_pass_id}/pickups', response_model=list[PickupOut])
def pickup_history(
    gate_pass_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        gate_pass = gate_pass_service.get_gate_pass(db, gate_pass_id)
        assert_customer_scope(principal, gate_pass.customer_id)
        return gate_pass_service.list_pickups(db, gate_pass_id)
    except ColdStoreError as exc:
        raise http_error(exc) from exc
