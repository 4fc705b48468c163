from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from coldstore.auth import STAFF_ROLES, Principal, Role, require_role
from coldstore.db import get_db
from coldstore.dependencies import get_client_ip, http_error
from coldstore.errors import ColdStoreError
from coldstore.models import ConsignmentCategory
from coldstore.schemas import (
    AdminActionOut,
    AllocationEditLogOut,
    AllocationOut,
    AllocationUpdate,
    ConsignmentCreate,
    ConsignmentDetail,
    ConsignmentOut,
    ConsignmentRemarkUpdate,
    GatarInfoOut,
    PlacementCreate,
)
from coldstore.services import consignment_service, ledger_service, occupancy_service
from coldstore.services.audit_service import list_actions

router = APIRouter(prefix='/api', tags=['ledger'])


@router.post('/consignments', response_model=ConsignmentOut, status_code=201)
def create_consignment(
    payload: ConsignmentCreate,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN, Role.EMPLOYEE)),
    db: Session = Depends(get_db),
):
    try:
        consignment = consignment_service.create_consignment(
            db,
            category=payload.category,
            expected_quantity=payload.expected_quantity,
            customer_id=payload.customer_id,
            remark=payload.remark,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()
    return consignment


@router.get('/consignments', response_model=list[ConsignmentOut])
def list_consignments(
    category: ConsignmentCategory | None = None,
    customer_id: int | None = None,
    principal: Principal = Depends(require_role(*STAFF_ROLES)),
    db: Session = Depends(get_db),
):
    return consignment_service.list_consignments(db, category=category, customer_id=customer_id)


@router.get('/consignments/{code:path}', response_model=ConsignmentDetail)
def consignment_detail(
    code: str,
    principal: Principal = Depends(require_role(*STAFF_ROLES)),
    db: Session = Depends(get_db),
):
    try:
        consignment = consignment_service.get_consignment_by_code(db, code)
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    return {
        'consignment': consignment,
        'total_quantity': ledger_service.total_quantity(db, consignment.code),
        'allocations': ledger_service.list_allocations(db, consignment_code=consignment.code),
    }


@router.patch('/consignments/{code:path}', response_model=ConsignmentOut)
def update_consignment_remark(
    code: str,
    payload: ConsignmentRemarkUpdate,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN, Role.EMPLOYEE)),
    db: Session = Depends(get_db),
):
    try:
        consignment = consignment_service.update_consignment_remark(
            db, code=code, remark=payload.remark, actor_user_id=principal.id, ip=get_client_ip(request)
        )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()
    return consignment


@router.post('/allocations', response_model=AllocationOut, status_code=201)
def record_placement(
    payload: PlacementCreate,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN, Role.EMPLOYEE)),
    db: Session = Depends(get_db),
):
    try:
        allocation = ledger_service.record_placement(
            db,
            consignment_code=payload.consignment_code,
            room_no=payload.room_no,
            floor=payload.floor,
            slots=payload.slots,
            quantity=payload.quantity,
            breakdown=payload.breakdown,
            remark=payload.remark,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()
    return allocation


@router.get('/allocations', response_model=list[AllocationOut])
def list_allocations(
    consignment_code: str | None = None,
    room_no: str | None = None,
    floor: str | None = None,
    principal: Principal = Depends(require_role(*STAFF_ROLES)),
    db: Session = Depends(get_db),
):
    return ledger_service.list_allocations(db, consignment_code=consignment_code, room_no=room_no, floor=floor)


@router.put('/allocations/{allocation_id}', response_model=AllocationOut)
def update_allocation(
    allocation_id: int,
    payload: AllocationUpdate,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        allocation = ledger_service.update_allocation(
            db,
            allocation_id=allocation_id,
            room_no=payload.room_no,
            floor=payload.floor,
            slots=payload.slots,
            quantity=payload.quantity,
            breakdown=payload.breakdown,
            remark=payload.remark,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()
    return allocation


@router.delete('/allocations/{allocation_id}', status_code=204)
def delete_allocation(
    allocation_id: int,
    request: Request,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        ledger_service.delete_allocation(
            db, allocation_id=allocation_id, actor_user_id=principal.id, ip=get_client_ip(request)
        )
    except ColdStoreError as exc:
        raise http_error(exc) from exc
    db.commit()


@router.get('/allocations/{allocation_id}/edit-logs', response_model=list[AllocationEditLogOut])
def allocation_edit_logs(
    allocation_id: int,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return ledger_service.list_edit_logs(db, allocation_id=allocation_id)


@router.get('/occupancy/rooms')
def room_summary(
    principal: Principal = Depends(require_role(*STAFF_ROLES)),
    db: Session = Depends(get_db),
):
    return occupancy_service.room_summary(db)


@router.get('/occupancy/gatars/{gatar}')
def gatar_details(
    gatar: str,
    principal: Principal = Depends(require_role(*STAFF_ROLES)),
    db: Session = Depends(get_db),
):
    return {'gatar': gatar, 'items': occupancy_service.slot_details(db, gatar=gatar)}


@router.get('/occupancy/{room_no}/{floor}', response_model=list[GatarInfoOut])
def floor_occupancy(
    room_no: str,
    floor: str,
    principal: Principal = Depends(require_role(*STAFF_ROLES)),
    db: Session = Depends(get_db),
):
    return occupancy_service.floor_occupancy(db, room_no=room_no, floor=floor)


@router.get('/audit-log', response_model=list[AdminActionOut])
def audit_log(
    target_type: str | None = None,
    target_id: int | None = None,
    principal: Principal = Depends(require_role(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return list_actions(db, target_type=target_type, target_id=target_id)
