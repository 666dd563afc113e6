"""In-process request repository. Implements RequestRepository; compare-and-set under an asyncio lock."""

import asyncio
from collections import Counter
from datetime import timezone
from typing import Dict, List, Optional

from change_control.application.request_repository import AGGREGATE_FIELDS, RequestFilter
from change_control.domain.models.request import ChangeRequest


def aggregate_key(request: ChangeRequest, field: str) -> str:
    if field == "created_day":
        return request.created_at.astimezone(timezone.utc).date().isoformat()
    value = getattr(request, field)
    return value.value if hasattr(value, "value") else str(value)


class InMemoryRequestRepository:
    """Dict-backed store. Values are immutable ChangeRequest instances, so no copies are needed."""

    def __init__(self) -> None:
        self._requests: Dict[str, ChangeRequest] = {}
        self._lock = asyncio.Lock()

    async def find_by_id(self, request_id: str) -> Optional[ChangeRequest]:
        return self._requests.get(request_id)

    async def insert(self, request: ChangeRequest) -> ChangeRequest:
        async with self._lock:
            if request.request_id in self._requests:
                raise ValueError(f"Request {request.request_id} already exists")
            self._requests[request.request_id] = request
        return request

    async def compare_and_set(self, request: ChangeRequest, expected_version: int) -> bool:
        async with self._lock:
            current = self._requests.get(request.request_id)
            if current is None or current.version != expected_version:
                return False
            self._requests[request.request_id] = request
            return True

    async def delete_by_id(self, request_id: str, expected_version: Optional[int] = None) -> bool:
        async with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                return False
            if expected_version is not None and current.version != expected_version:
                return False
            del self._requests[request_id]
            return True

    async def find_by_filter(
        self,
        request_filter: RequestFilter,
        offset: int = 0,
        limit: int = 50,
    ) -> List[ChangeRequest]:
        matching = self._matching(request_filter)
        matching.sort(key=lambda r: r.created_at, reverse=True)
        return matching[offset : offset + limit]

    async def count_by_filter(self, request_filter: RequestFilter) -> int:
        return len(self._matching(request_filter))

    async def aggregate_by_field(self, field: str, request_filter: RequestFilter) -> Dict[str, int]:
        if field not in AGGREGATE_FIELDS:
            raise ValueError(f"Cannot aggregate requests by '{field}'")
        return dict(Counter(aggregate_key(r, field) for r in self._matching(request_filter)))

    def _matching(self, request_filter: RequestFilter) -> List[ChangeRequest]:
        return [r for r in self._requests.values() if request_filter.matches(r)]
