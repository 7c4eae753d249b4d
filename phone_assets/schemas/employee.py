"""Employee and department schemas."""
from datetime import date, datetime
from uuid import UUID

from pydantic import Field

from phone_assets.db.enums import EmploymentStatus
from phone_assets.schemas.base import CamelModel


class EmployeeCreate(CamelModel):
    employee_id: str = Field(..., min_length=1, max_length=50)
    full_name: str = Field(..., min_length=1, max_length=255)
    email: str | None = None
    department_id: UUID | None = None
    hire_date: date | None = None


class EmployeeRead(CamelModel):
    id: UUID
    employee_id: str
    full_name: str
    email: str | None = None
    department_id: UUID | None = None
    employment_status: str
    hire_date: date | None = None
    termination_date: date | None = None
    created_at: datetime


class EmployeeListResponse(CamelModel):
    items: list[EmployeeRead]
    total: int


class EmploymentStatusUpdate(CamelModel):
    employment_status: EmploymentStatus
    termination_date: date | None = None


class EmploymentStatusResult(CamelModel):
    """Updated employee plus how many registered phones went into risk review."""
    employee: EmployeeRead
    flagged_phones: int


class DepartmentRead(CamelModel):
    id: UUID
    name: str
    parent_id: UUID | None = None


class DepartmentSelectionRequest(CamelModel):
    department_ids: list[UUID] = []


class DepartmentSelectionResponse(CamelModel):
    effective_ids: list[UUID]
    indeterminate_ids: list[UUID]
