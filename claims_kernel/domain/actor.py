"""Acting user identity passed explicitly into every core operation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from claims_kernel.exceptions import RoleNotPermittedError


class Role(str, Enum):
    """Roles an authenticated account can hold."""

    LECTURER = "Lecturer"
    COORDINATOR = "Coordinator"
    MANAGER = "Manager"
    HR = "HR"


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation.

    ``user_id`` is the identity-provider subject; it is what audit entries
    record as the acting user.
    """

    user_id: str
    role: Role

    def require(self, action: str, *roles: Role) -> None:
        """Raise RoleNotPermittedError unless this actor holds one of ``roles``."""
        if self.role not in roles:
            raise RoleNotPermittedError(role=self.role.value, action=action)
