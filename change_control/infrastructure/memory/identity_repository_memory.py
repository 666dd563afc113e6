"""In-process identity repository. Implements IdentityRepository."""

from collections import Counter
from typing import Dict, List, Optional

from change_control.application.identity_repository import IDENTITY_AGGREGATE_FIELDS, IdentityFilter
from change_control.domain.exceptions import NotFoundError
from change_control.domain.models.identity import Identity, parse_employee_number


class InMemoryIdentityRepository:
    def __init__(self) -> None:
        self._identities: Dict[str, Identity] = {}
        self._credentials: Dict[str, str] = {}

    async def find_by_id(self, identity_id: str) -> Optional[Identity]:
        return self._identities.get(identity_id)

    async def find_by_email(self, email: str) -> Optional[Identity]:
        needle = email.strip().lower()
        for identity in self._identities.values():
            if identity.email == needle:
                return identity
        return None

    async def insert(self, identity: Identity, credential_hash: str) -> Identity:
        if identity.identity_id in self._identities:
            raise ValueError(f"Identity {identity.identity_id} already exists")
        self._identities[identity.identity_id] = identity
        self._credentials[identity.identity_id] = credential_hash
        return identity

    async def save(self, identity: Identity) -> Identity:
        if identity.identity_id not in self._identities:
            raise NotFoundError("Identity", identity.identity_id)
        self._identities[identity.identity_id] = identity
        return identity

    async def delete_by_id(self, identity_id: str) -> bool:
        self._credentials.pop(identity_id, None)
        return self._identities.pop(identity_id, None) is not None

    async def find_by_filter(
        self,
        identity_filter: IdentityFilter,
        offset: int = 0,
        limit: int = 50,
    ) -> List[Identity]:
        matching = [i for i in self._identities.values() if identity_filter.matches(i)]
        matching.sort(key=lambda i: (i.created_at is not None, i.created_at), reverse=True)
        return matching[offset : offset + limit]

    async def count_by_filter(self, identity_filter: IdentityFilter) -> int:
        return sum(1 for i in self._identities.values() if identity_filter.matches(i))

    async def aggregate_by_field(self, field: str, identity_filter: IdentityFilter) -> Dict[str, int]:
        if field not in IDENTITY_AGGREGATE_FIELDS:
            raise ValueError(f"Cannot aggregate identities by '{field}'")
        counts: Counter = Counter()
        for identity in self._identities.values():
            if not identity_filter.matches(identity):
                continue
            if field == "role":
                counts[identity.role.value] += 1
            else:
                counts["true" if identity.is_active else "false"] += 1
        return dict(counts)

    async def max_employee_number(self) -> int:
        numbers = [parse_employee_number(i.employee_id) for i in self._identities.values()]
        return max((n for n in numbers if n is not None), default=0)

    async def credential_hash(self, identity_id: str) -> Optional[str]:
        return self._credentials.get(identity_id)
