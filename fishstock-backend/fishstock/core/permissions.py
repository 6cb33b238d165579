from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from fishstock.core.security_current import Actor, get_current_actor


def require_roles(*allowed_roles: str) -> Callable[[Actor], Actor]:
    normalized_allowed = {role.strip().lower() for role in allowed_roles if role.strip()}
    if not normalized_allowed:
        raise ValueError("At least one allowed role is required")

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in normalized_allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this action",
            )
        return actor

    return dependency


_EMPLOYEE_PERMISSIONS = {
    "products.view",
    "movements.view",
    "movements.propose",
    "sales.view",
    "sales.create",
}

PERMISSION_MATRIX: dict[str, set[str]] = {
    "owner": {"*"},
    "manager": _EMPLOYEE_PERMISSIONS
    | {
        "movements.approve",
        "movements.reject",
        "movements.cancel.any",
    },
    "employee": set(_EMPLOYEE_PERMISSIONS),
}


def role_permissions(role: str) -> set[str]:
    normalized = (role or "").strip().lower()
    return set(PERMISSION_MATRIX.get(normalized, set()))


def has_permission(*, role: str, permission: str) -> bool:
    permissions = role_permissions(role)
    if "*" in permissions:
        return True
    return permission in permissions


def require_permission(permission: str) -> Callable[[Actor], Actor]:
    normalized_permission = (permission or "").strip().lower()
    if not normalized_permission:
        raise ValueError("Permission key is required")

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not has_permission(role=actor.role, permission=normalized_permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission for this action",
            )
        return actor

    return dependency
