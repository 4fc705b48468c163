from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"
    GUARD = "guard"
    CUSTOMER = "customer"


STAFF_ROLES = (Role.ADMIN, Role.EMPLOYEE, Role.GUARD)


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    customer_id: int | None
    active: bool


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


def assert_customer_scope(principal: Principal, target_customer_id: int | None) -> None:
    if principal.role != Role.CUSTOMER:
        return
    if principal.customer_id is None or principal.customer_id != target_customer_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
