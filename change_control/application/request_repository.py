"""Request repository protocol. Application layer depends on this; infrastructure implements it."""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Protocol

from change_control.domain.models.request import (
    ChangeRequest,
    ChangeType,
    Priority,
    RequestStatus,
    RiskLevel,
)

# Fields aggregate_by_field may group on. created_day groups on the UTC date of created_at.
AGGREGATE_FIELDS = ("status", "change_type", "risk_level", "priority", "created_day")


@dataclass(frozen=True)
class RequestFilter:
    """
    Equality, set membership, date range and case-insensitive substring filters.
    statuses=None means any status; an empty set matches nothing.
    """

    created_by: Optional[str] = None
    statuses: Optional[FrozenSet[RequestStatus]] = None
    change_type: Optional[ChangeType] = None
    risk_level: Optional[RiskLevel] = None
    priority: Optional[Priority] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    search: Optional[str] = None

    def matches(self, request: ChangeRequest) -> bool:
        if self.created_by is not None and request.created_by != self.created_by:
            return False
        if self.statuses is not None and request.status not in self.statuses:
            return False
        if self.change_type is not None and request.change_type != self.change_type:
            return False
        if self.risk_level is not None and request.risk_level != self.risk_level:
            return False
        if self.priority is not None and request.priority != self.priority:
            return False
        if self.created_from is not None and request.created_at < self.created_from:
            return False
        if self.created_to is not None and request.created_at > self.created_to:
            return False
        if self.search:
            needle = self.search.lower()
            if needle not in request.title.lower() and needle not in request.description.lower():
                return False
        return True

    def narrowed(
        self,
        *,
        created_by: Optional[str] = None,
        statuses: Optional[FrozenSet[RequestStatus]] = None,
    ) -> "RequestFilter":
        """Intersect with a read scope. Never widens the filter."""
        new_statuses = self.statuses
        if statuses is not None:
            new_statuses = statuses if new_statuses is None else new_statuses & statuses
        return RequestFilter(
            created_by=created_by if created_by is not None else self.created_by,
            statuses=new_statuses,
            change_type=self.change_type,
            risk_level=self.risk_level,
            priority=self.priority,
            created_from=self.created_from,
            created_to=self.created_to,
            search=self.search,
        )


class RequestRepository(Protocol):
    """Protocol for persisting change requests. Status writes go through compare_and_set only."""

    async def find_by_id(self, request_id: str) -> Optional[ChangeRequest]:
        """Return the request, or None if not found."""
        ...

    async def insert(self, request: ChangeRequest) -> ChangeRequest:
        """Persist a new request and return it."""
        ...

    async def compare_and_set(self, request: ChangeRequest, expected_version: int) -> bool:
        """Replace the stored request iff its version still equals expected_version. Returns True on write."""
        ...

    async def delete_by_id(self, request_id: str, expected_version: Optional[int] = None) -> bool:
        """Delete the request (iff at expected_version when given). Returns True if a row was removed."""
        ...

    async def find_by_filter(
        self,
        request_filter: RequestFilter,
        offset: int = 0,
        limit: int = 50,
    ) -> List[ChangeRequest]:
        """Matching requests, newest first."""
        ...

    async def count_by_filter(self, request_filter: RequestFilter) -> int:
        ...

    async def aggregate_by_field(self, field: str, request_filter: RequestFilter) -> Dict[str, int]:
        """Count matching requests grouped by one of AGGREGATE_FIELDS."""
        ...
