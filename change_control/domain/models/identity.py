"""Identity domain model. Actors supplied by the authentication layer."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

EMPLOYEE_ID_PREFIX = "EMP-"


class Role(str, Enum):
    """Closed set of roles. CLIENT is the external auditor role."""

    EMPLOYEE = "Employee"
    MANAGER = "Manager"
    ADMIN = "Admin"
    CLIENT = "Client"


@dataclass(frozen=True)
class Identity:
    """
    An actor with a role. Acting identities passed into core operations only need
    identity_id and role; provisioned identities carry the full profile.
    """

    identity_id: str
    role: Role
    is_active: bool = True
    name: str = ""
    email: str = ""
    employee_id: Optional[str] = None
    department: str = ""
    notification_email: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_changes(self, **changes) -> "Identity":
        return replace(self, **changes)


def format_employee_id(number: int) -> str:
    """EMP-0001 style employee number."""
    return f"{EMPLOYEE_ID_PREFIX}{number:04d}"


def parse_employee_number(employee_id: Optional[str]) -> Optional[int]:
    """Return the numeric part of an employee id, or None if it is not in EMP-NNNN form."""
    if not employee_id or not employee_id.startswith(EMPLOYEE_ID_PREFIX):
        return None
    digits = employee_id[len(EMPLOYEE_ID_PREFIX):]
    if not digits.isdigit():
        return None
    return int(digits)
