"""The authenticated caller as handed to the core by the upstream gateway."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from barter_exchange.domain.exceptions import ForbiddenError

SYSTEM_USER_ID = uuid.UUID(int=0)


@dataclass(frozen=True)
class Principal:
    """Who is calling.

    The core never validates bearer tokens; it trusts the principal resolved
    upstream and uses it only for participant/ownership predicates and
    admin checks.
    """

    user_id: uuid.UUID
    username: str
    is_admin: bool = False

    @classmethod
    def system(cls) -> Principal:
        """Root context for background work such as the verification loop."""
        return cls(user_id=SYSTEM_USER_ID, username="system", is_admin=True)

    @property
    def is_system(self) -> bool:
        return self.user_id == SYSTEM_USER_ID

    def require_admin(self) -> None:
        """Raise ForbiddenError unless this principal is an admin."""
        if not self.is_admin:
            raise ForbiddenError()
