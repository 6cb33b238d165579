from dataclasses import dataclass

from fastapi import HTTPException, Request

from fishstock.core.config import settings

KNOWN_ROLES = ("owner", "manager", "employee")


@dataclass(frozen=True)
class Actor:
    """Caller identity as asserted by the upstream identity service."""

    id: str
    role: str


def get_current_actor(request: Request) -> Actor:
    actor_id = (request.headers.get(settings.actor_id_header) or "").strip()
    role = (request.headers.get(settings.actor_role_header) or "").strip().lower()
    if not actor_id or not role:
        raise HTTPException(status_code=401, detail="Missing actor identity headers")
    if role not in KNOWN_ROLES:
        raise HTTPException(status_code=401, detail="Unknown actor role")
    return Actor(id=actor_id, role=role)
