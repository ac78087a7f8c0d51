"""
Authenticated caller passed into every service operation.
"""
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from shop.domain.exceptions import PermissionDeniedError

CUSTOMER = "customer"
ADMIN = "admin"


@dataclass(frozen=True)
class AuthContext:
    user_id: UUID
    role: str = CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

    def require_admin(self) -> None:
        if not self.is_admin:
            raise PermissionDeniedError("Admin access required")

    def require_owner(self, owner_id: UUID, message: str = "Access denied") -> None:
        if owner_id != self.user_id:
            raise PermissionDeniedError(message)

    def require_owner_or_admin(self, owner_id: UUID) -> None:
        if not self.is_admin:
            self.require_owner(owner_id)
