"""
Identity Context passed explicitly into every authorization decision.

The authentication dependency builds one ``Identity`` per request from the
verified user. Predicates and query builders receive it as a parameter;
nothing reads it from request state.
"""

from dataclasses import dataclass
from typing import Any

from models import UserRole


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: UserRole

    @classmethod
    def from_user(cls, user: Any) -> "Identity":
        """Build an identity from an authenticated user row."""
        return cls(user_id=str(user.id), role=UserRole(getattr(user, "role", UserRole.user.value)))

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    def is_user(self, ref: Any) -> bool:
        """
        Compare a stored user reference against this identity.

        References are compared in string form; a missing reference never
        matches.
        """
        if ref is None:
            return False
        return str(ref) == self.user_id
