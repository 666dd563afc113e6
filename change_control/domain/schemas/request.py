"""Pydantic schemas for change request payloads and responses. Strict validation, no DB or infrastructure."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from change_control.domain.models.request import (
    REJECTION_REASON_MAX_LENGTH,
    ChangeRequest,
    ChangeType,
    Environment,
    Priority,
    RequestStatus,
    RiskLevel,
)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken as UTC so they compare with stored values."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RequestCreate(BaseModel):
    """Payload for submitting a change request. Unknown keys are ignored; status is never accepted."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    change_type: ChangeType
    risk_level: RiskLevel
    environment: Optional[Environment] = None
    planned_start_date: datetime
    planned_end_date: datetime
    implementation_plan: str = Field(..., min_length=5, max_length=5000)
    rollback_plan: str = Field(..., min_length=5, max_length=5000)
    testing_plan: Optional[str] = Field(None, max_length=5000)
    justification: str = Field(..., min_length=5, max_length=2000)
    impact_assessment: str = Field(..., min_length=5, max_length=2000)
    affected_departments: List[str] = Field(..., min_length=1)
    priority: Priority = Priority.MEDIUM

    @field_validator("planned_start_date", "planned_end_date")
    @classmethod
    def dates_in_utc(cls, v):
        return _as_utc(v)

    @model_validator(mode="after")
    def end_after_start(self) -> "RequestCreate":
        if self.planned_end_date < self.planned_start_date:
            raise ValueError("Planned end date must be after start date")
        return self


class RequestUpdate(BaseModel):
    """Partial content update. Status, approver and decision fields are rejected as unknown keys."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, min_length=10, max_length=2000)
    change_type: Optional[ChangeType] = None
    risk_level: Optional[RiskLevel] = None
    environment: Optional[Environment] = None
    planned_start_date: Optional[datetime] = None
    planned_end_date: Optional[datetime] = None
    implementation_plan: Optional[str] = Field(None, min_length=5, max_length=5000)
    rollback_plan: Optional[str] = Field(None, min_length=5, max_length=5000)
    testing_plan: Optional[str] = Field(None, max_length=5000)
    justification: Optional[str] = Field(None, max_length=2000)
    impact_assessment: Optional[str] = Field(None, max_length=2000)
    affected_departments: Optional[List[str]] = None
    priority: Optional[Priority] = None

    @field_validator("planned_start_date", "planned_end_date")
    @classmethod
    def dates_in_utc(cls, v):
        return _as_utc(v)

    @model_validator(mode="after")
    def at_least_one_field(self) -> "RequestUpdate":
        if not self.model_dump(exclude_none=True):
            raise ValueError("At least one field must be provided for update")
        return self


class RejectRequestBody(BaseModel):
    rejection_reason: str = Field("", max_length=REJECTION_REASON_MAX_LENGTH)


class CancelRequestBody(BaseModel):
    reason: Optional[str] = Field(None, max_length=REJECTION_REASON_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------

class RequestResponse(BaseModel):
    """Read model for a change request."""

    model_config = ConfigDict(from_attributes=True)

    request_id: str
    title: str
    description: str
    change_type: ChangeType
    risk_level: RiskLevel
    environment: Optional[Environment] = None
    justification: Optional[str] = None
    planned_start_date: Optional[datetime] = None
    planned_end_date: Optional[datetime] = None
    implementation_plan: Optional[str] = None
    rollback_plan: Optional[str] = None
    testing_plan: Optional[str] = None
    impact_assessment: Optional[str] = None
    affected_departments: List[str] = Field(default_factory=list)
    priority: Priority
    status: RequestStatus
    created_by: str
    approved_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_domain(cls, request: ChangeRequest) -> "RequestResponse":
        return cls.model_validate(request)
