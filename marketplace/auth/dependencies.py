# Caller identity and role dependencies.
#
# Authentication happens upstream: the API gateway verifies the session and
# forwards the caller as X-User-Uid / X-User-Role headers.

from fastapi import Header
from typing import List, Optional
from pydantic import BaseModel
import uuid

from marketplace.errors import MissingIdentity, InsufficientPermission

ROLES = ("buyer", "seller", "admin")


class Actor(BaseModel):
    uid: uuid.UUID
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_actor(
    x_user_uid: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    if not x_user_uid:
        raise MissingIdentity("X-User-Uid header is required")
    try:
        uid = uuid.UUID(x_user_uid)
    except ValueError:
        raise MissingIdentity("X-User-Uid is not a valid UUID")

    role = (x_user_role or "buyer").lower()
    if role not in ROLES:
        raise InsufficientPermission(f"Unknown role {role}")
    return Actor(uid=uid, role=role)


class RoleChecker:
    """Role-based access control used as a route dependency.

    Returns the current actor so routes can depend on the checker directly.
    """
    def __init__(self, allowed_roles: List[str]) -> None:
        self.allowed_roles = allowed_roles

    async def __call__(
        self,
        x_user_uid: Optional[str] = Header(default=None),
        x_user_role: Optional[str] = Header(default=None),
    ) -> Actor:
        actor = await get_current_actor(x_user_uid, x_user_role)
        if actor.role in self.allowed_roles:
            return actor

        raise InsufficientPermission()


# Pre-configured checkers
admin_role_checker = RoleChecker(allowed_roles=["admin"])
seller_role_checker = RoleChecker(allowed_roles=["seller", "admin"])
