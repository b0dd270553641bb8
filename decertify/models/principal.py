from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from decertify.models.identity import Role


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller extracted from a validated JWT.

    Built by the ``require_user`` dependency and handed explicitly to
    every service call, so no service reads ambient request state.

        identity_id: ``sub`` claim, the Identity's id
        role: ``role`` claim, one of :class:`Role`
    """

    identity_id: UUID
    role: Role

    def has_role(self, role: Role) -> bool:
        return self.role is role

    @property
    def is_student(self) -> bool:
        return self.role is Role.STUDENT

    @property
    def is_organization(self) -> bool:
        return self.role is Role.ORGANIZATION
