"""Change request domain model and status state machine. Pure business semantics, no ORM or infrastructure."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from change_control.domain.exceptions import DomainValidationError, InvalidTransitionError

REJECTION_REASON_MIN_LENGTH = 10
REJECTION_REASON_MAX_LENGTH = 1000


class RequestStatus(str, Enum):
    """Lifecycle status for change requests. Transitions are validated."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    SENT_TO_AUDIT = "Sent to Audit"
    SOLVED = "Solved"


class ChangeType(str, Enum):
    INFRASTRUCTURE = "Infrastructure"
    APPLICATION = "Application"
    DATABASE = "Database"
    NETWORK = "Network"
    SECURITY = "Security"
    OTHER = "Other"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class Environment(str, Enum):
    DEVELOPMENT = "Development"
    STAGING = "Staging"
    PRODUCTION = "Production"
    ALL = "All"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Allowed status transitions: from_status -> set of valid next statuses
_STATUS_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset(
        {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED}
    ),
    RequestStatus.APPROVED: frozenset(
        {
            RequestStatus.SENT_TO_AUDIT,
            RequestStatus.IN_PROGRESS,
            RequestStatus.COMPLETED,
            RequestStatus.CANCELLED,
        }
    ),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.SENT_TO_AUDIT: frozenset({RequestStatus.SOLVED, RequestStatus.CANCELLED}),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
    RequestStatus.SOLVED: frozenset(),
}

ACTIVE_STATUSES: FrozenSet[RequestStatus] = frozenset(
    status for status, targets in _STATUS_TRANSITIONS.items() if targets
)
TERMINAL_STATUSES: FrozenSet[RequestStatus] = frozenset(
    status for status, targets in _STATUS_TRANSITIONS.items() if not targets
)

# Statuses counted as "approved" in analytics and visible to the auditor role.
APPROVED_FAMILY: FrozenSet[RequestStatus] = frozenset(
    {RequestStatus.APPROVED, RequestStatus.COMPLETED, RequestStatus.SENT_TO_AUDIT}
)

# Fields a content update may touch. Status, approver and decision fields are never listed.
CONTENT_FIELDS: Tuple[str, ...] = (
    "title",
    "description",
    "justification",
    "change_type",
    "risk_level",
    "environment",
    "planned_start_date",
    "planned_end_date",
    "implementation_plan",
    "rollback_plan",
    "testing_plan",
    "impact_assessment",
    "affected_departments",
    "priority",
)


def allowed_transitions(current: RequestStatus) -> FrozenSet[RequestStatus]:
    return _STATUS_TRANSITIONS.get(current, frozenset())


def validate_transition(current: RequestStatus, new: RequestStatus) -> None:
    """Validate that transition from current to new is allowed. Raises InvalidTransitionError if not."""
    if new not in allowed_transitions(current):
        raise InvalidTransitionError(
            f"Invalid status transition from '{current.value}' to '{new.value}'",
            current_status=current.value,
            expected_statuses=[
                status.value for status, targets in _STATUS_TRANSITIONS.items() if new in targets
            ],
        )


@dataclass(frozen=True)
class ChangeRequest:
    """
    A submitted change proposal. Immutable value: every change produces a new instance
    through transition_to() or with_content(), each bumping version for compare-and-set.

    Invariants (checked on construction):
      - status is a RequestStatus member
      - approved_by and decided_at are both set or both None
      - rejection_reason is non-empty and bounded iff status is REJECTED
    """

    request_id: str
    title: str
    description: str
    change_type: ChangeType
    risk_level: RiskLevel
    created_by: str
    status: RequestStatus
    created_at: datetime
    updated_at: datetime
    environment: Optional[Environment] = None
    justification: Optional[str] = None
    planned_start_date: Optional[datetime] = None
    planned_end_date: Optional[datetime] = None
    implementation_plan: Optional[str] = None
    rollback_plan: Optional[str] = None
    testing_plan: Optional[str] = None
    impact_assessment: Optional[str] = None
    affected_departments: Tuple[str, ...] = field(default_factory=tuple)
    priority: Priority = Priority.MEDIUM
    approved_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    version: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.status, RequestStatus):
            raise DomainValidationError(f"Unknown request status: {self.status!r}")
        if (self.approved_by is None) != (self.decided_at is None):
            raise DomainValidationError(
                "approved_by and decided_at must both be set or both be empty"
            )
        if self.status == RequestStatus.REJECTED:
            reason = (self.rejection_reason or "").strip()
            if not (REJECTION_REASON_MIN_LENGTH <= len(reason) <= REJECTION_REASON_MAX_LENGTH):
                raise DomainValidationError(
                    "Rejected requests require a rejection reason of "
                    f"{REJECTION_REASON_MIN_LENGTH}-{REJECTION_REASON_MAX_LENGTH} characters"
                )
        elif self.rejection_reason is not None:
            raise DomainValidationError("rejection_reason is only allowed on rejected requests")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_owned_by(self, identity_id: str) -> bool:
        return self.created_by == identity_id

    def transition_to(
        self,
        new_status: RequestStatus,
        *,
        at: datetime,
        decided_by: Optional[str] = None,
        rejection_reason: Optional[str] = None,
    ) -> "ChangeRequest":
        """
        Return a copy in new_status. Decision transitions (APPROVED, REJECTED) record
        the decider and decision time; other transitions keep the existing decision.
        Raises InvalidTransitionError if the transition is not in the table.
        """
        validate_transition(self.status, new_status)
        changes: Dict[str, Any] = {
            "status": new_status,
            "updated_at": at,
            "version": self.version + 1,
        }
        if new_status in (RequestStatus.APPROVED, RequestStatus.REJECTED):
            changes["approved_by"] = decided_by
            changes["decided_at"] = max(at, self.created_at)
        if new_status == RequestStatus.REJECTED:
            changes["rejection_reason"] = (rejection_reason or "").strip()
        return replace(self, **changes)

    def with_content(self, fields: Mapping[str, Any], *, at: datetime) -> "ChangeRequest":
        """Return a copy with content fields replaced. Non-content keys are rejected."""
        illegal = sorted(set(fields) - set(CONTENT_FIELDS))
        if illegal:
            raise DomainValidationError(
                f"Fields cannot be changed through a content update: {', '.join(illegal)}"
            )
        changes = dict(fields)
        if "affected_departments" in changes and changes["affected_departments"] is not None:
            changes["affected_departments"] = tuple(changes["affected_departments"])
        updated = replace(self, **changes, updated_at=at, version=self.version + 1)
        if (
            updated.planned_start_date is not None
            and updated.planned_end_date is not None
            and updated.planned_end_date < updated.planned_start_date
        ):
            raise DomainValidationError("Planned end date must be after start date")
        return updated

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for responses, logs and notifications."""
        return {
            "request_id": self.request_id,
            "title": self.title,
            "description": self.description,
            "change_type": self.change_type.value,
            "risk_level": self.risk_level.value,
            "environment": self.environment.value if self.environment else None,
            "justification": self.justification,
            "planned_start_date": _iso(self.planned_start_date),
            "planned_end_date": _iso(self.planned_end_date),
            "implementation_plan": self.implementation_plan,
            "rollback_plan": self.rollback_plan,
            "testing_plan": self.testing_plan,
            "impact_assessment": self.impact_assessment,
            "affected_departments": list(self.affected_departments),
            "priority": self.priority.value,
            "status": self.status.value,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "decided_at": _iso(self.decided_at),
            "rejection_reason": self.rejection_reason,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "version": self.version,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
