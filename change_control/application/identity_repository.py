"""Identity repository protocol. Infrastructure implements it; credential hashes never leave storage."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from change_control.domain.models.identity import Identity, Role

IDENTITY_AGGREGATE_FIELDS = ("role", "is_active")


@dataclass(frozen=True)
class IdentityFilter:
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    search: Optional[str] = None

    def matches(self, identity: Identity) -> bool:
        if self.role is not None and identity.role != self.role:
            return False
        if self.is_active is not None and identity.is_active != self.is_active:
            return False
        if self.search:
            needle = self.search.lower()
            haystack = (identity.name.lower(), identity.email.lower(), (identity.employee_id or "").lower())
            if not any(needle in value for value in haystack):
                return False
        return True


class IdentityRepository(Protocol):
    """Protocol for provisioned identities."""

    async def find_by_id(self, identity_id: str) -> Optional[Identity]:
        ...

    async def find_by_email(self, email: str) -> Optional[Identity]:
        """Lookup by lower-cased email."""
        ...

    async def insert(self, identity: Identity, credential_hash: str) -> Identity:
        ...

    async def save(self, identity: Identity) -> Identity:
        """Persist profile changes of an existing identity."""
        ...

    async def delete_by_id(self, identity_id: str) -> bool:
        ...

    async def find_by_filter(
        self,
        identity_filter: IdentityFilter,
        offset: int = 0,
        limit: int = 50,
    ) -> List[Identity]:
        """Matching identities, newest first."""
        ...

    async def count_by_filter(self, identity_filter: IdentityFilter) -> int:
        ...

    async def aggregate_by_field(self, field: str, identity_filter: IdentityFilter) -> Dict[str, int]:
        """Count grouped by role or is_active ("true"/"false")."""
        ...

    async def max_employee_number(self) -> int:
        """Highest EMP-NNNN number assigned so far, 0 if none."""
        ...

    async def credential_hash(self, identity_id: str) -> Optional[str]:
        """Stored hash for the authentication layer. Never returned through services."""
        ...
