"""Pydantic schemas for identity provisioning payloads and responses."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from change_control.domain.models.identity import Identity, Role

EMAIL_PATTERN = r"^\w+([\.-]?\w+)*@\w+([\.-]?\w+)*(\.\w{2,3})+$"


def _normalize_email(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


class IdentityCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    role: Role
    department: str = Field("", max_length=100)
    notification_email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)

    @field_validator("email", "notification_email", mode="before")
    @classmethod
    def lowercase_email(cls, v):
        v = _normalize_email(v)
        if v == "":
            return None
        return v


class IdentityUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    department: Optional[str] = Field(None, max_length=100)

    @field_validator("email", mode="before")
    @classmethod
    def lowercase_email(cls, v):
        return _normalize_email(v)

    @model_validator(mode="after")
    def at_least_one_field(self) -> "IdentityUpdate":
        if not self.model_dump(exclude_none=True):
            raise ValueError("At least one field must be provided for update")
        return self


class IdentityResponse(BaseModel):
    """Identity read model. Never carries credential material."""

    model_config = ConfigDict(from_attributes=True)

    identity_id: str
    name: str
    email: str
    role: Role
    is_active: bool
    employee_id: Optional[str] = None
    department: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, identity: Identity) -> "IdentityResponse":
        return cls.model_validate(identity)
