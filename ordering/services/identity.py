from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CLIENT = "client"


@dataclass(frozen=True)
class Identity:
    """Authenticated actor handed to every workflow operation."""

    user_id: int
    role: Role

    @property
    def is_privileged(self) -> bool:
        return self.role in (Role.ADMIN, Role.STAFF)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def can_see(self, owner_id: int) -> bool:
        return self.is_privileged or owner_id == self.user_id


def identity_from_session(data: Mapping[str, Any]) -> Optional[Identity]:
    """Build an identity from session keys set by the auth layer; None if anonymous."""
    user_id = data.get("user_id")
    if user_id is None:
        return None
    try:
        role = Role(str(data.get("role") or Role.CLIENT.value).lower())
        return Identity(user_id=int(user_id), role=role)
    except ValueError:
        return None
