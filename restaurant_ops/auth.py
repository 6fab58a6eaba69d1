from dataclasses import dataclass

from fastapi import Depends, Request

from restaurant_ops.errors import AuthenticationFailed, PermissionDenied
from restaurant_ops.models import UserRole


Role = UserRole


@dataclass
class Principal:
    id: int
    email: str
    role: Role
    restaurant_id: int
    full_name: str
    active: bool
    session_id: int | None = None
    location_session_id: str | None = None


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise AuthenticationFailed("Authentication required")
    if not principal.active:
        raise PermissionDenied("Account is inactive")
    return principal


def is_manager_role(role: Role) -> bool:
    return role in {Role.ADMIN, Role.MANAGER}


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise PermissionDenied("Insufficient permissions")
        return principal

    return _dep


def assert_restaurant_scope(principal: Principal, target_restaurant_id: int) -> None:
    if principal.role == Role.ADMIN:
        return
    if principal.restaurant_id != target_restaurant_id:
        raise PermissionDenied("Access denied")
