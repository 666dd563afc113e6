# change_control/infrastructure/database/models.py

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from change_control.infrastructure.database.session import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JsonType = JSON().with_variant(JSONB(), "postgresql")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class IdentityRow(Base):
    """Provisioned identity. Credential hash never leaves the infrastructure layer."""

    __tablename__ = "identities"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=False, default="")
    email = Column(String(254), nullable=False, unique=True, index=True)
    credential_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    employee_id = Column(String(20), nullable=True, unique=True)
    department = Column(String(100), nullable=False, default="")
    notification_email = Column(String(254), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class RequestRow(Base):
    """Change request. version backs compare-and-set status writes."""

    __tablename__ = "change_requests"

    id = Column(String(36), primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    justification = Column(Text, nullable=True)
    change_type = Column(String(30), nullable=False, index=True)
    risk_level = Column(String(20), nullable=False, index=True)
    environment = Column(String(20), nullable=True)
    planned_start_date = Column(DateTime(timezone=True), nullable=True)
    planned_end_date = Column(DateTime(timezone=True), nullable=True)
    implementation_plan = Column(Text, nullable=True)
    rollback_plan = Column(Text, nullable=True)
    testing_plan = Column(Text, nullable=True)
    impact_assessment = Column(Text, nullable=True)
    affected_departments = Column(JsonType, nullable=False, default=list)
    priority = Column(String(10), nullable=False, default="Medium")
    status = Column(String(20), nullable=False, index=True)
    created_by = Column(String(36), nullable=False, index=True)
    approved_by = Column(String(36), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False, default=1)


class AuditRecordRow(Base):
    """Append-only audit record. Mapper listeners in immutability.py reject update and delete."""

    __tablename__ = "audit_records"

    # Append order; breaks timestamp ties so the newest append sorts first.
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True)
    actor_id = Column(String(36), nullable=True, index=True)
    action = Column(String(40), nullable=False, index=True)
    request_id = Column(String(36), nullable=True, index=True)
    target_identity_id = Column(String(36), nullable=True, index=True)
    ip_address = Column(String(64), nullable=False, default="unknown")
    user_agent = Column(String(512), nullable=True)
    correlation_id = Column(String(64), nullable=True)
    details = Column(JsonType, nullable=True)
    timestamp_utc = Column(DateTime(timezone=True), nullable=False, index=True)
