"""Phone number schemas for request/response validation."""
from datetime import date, datetime
from uuid import UUID

from pydantic import Field

from phone_assets.db.enums import PhoneStatus, RiskAction
from phone_assets.schemas.base import CamelModel


# =============================================================================
# Requests
# =============================================================================

class PhoneCreate(CamelModel):
    """Register a new number. Status is restricted to the creation states."""
    number: str = Field(..., min_length=1, max_length=32)
    registrant_employee_id: str = Field(..., min_length=1)
    status: PhoneStatus = PhoneStatus.IDLE
    vendor: str | None = None
    purpose: str | None = None
    remarks: str | None = None
    application_date: date | None = None
    department_id: UUID | None = None


class PhoneUpdate(CamelModel):
    """Partial update. Only fields present in the payload are applied."""
    status: PhoneStatus | None = None
    vendor: str | None = None
    purpose: str | None = None
    remarks: str | None = None
    application_date: date | None = None
    cancellation_date: date | None = None
    department_id: UUID | None = None
    registrant_employee_id: str | None = None


class PhoneAssign(CamelModel):
    employee_id: str = Field(..., min_length=1)
    assignment_date: date | None = None
    purpose: str | None = None


class PhoneUnassign(CamelModel):
    reclaim_date: date | None = None


class HandleRiskRequest(CamelModel):
    action: RiskAction
    new_applicant_employee_id: str | None = None
    cancellation_date: date | None = None
    operator: str | None = None
    note: str | None = None


# =============================================================================
# Responses
# =============================================================================

class EmployeeBrief(CamelModel):
    id: UUID
    employee_id: str
    full_name: str
    employment_status: str


class UsageHistoryRead(CamelModel):
    id: UUID
    employee_id: UUID
    employee_name: str | None = None
    start_date: date
    end_date: date | None


class RiskCaseRead(CamelModel):
    id: UUID
    reason: str
    detected_at: datetime
    resolution_action: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    note: str | None = None


class PhoneRead(CamelModel):
    id: UUID
    number: str
    status: str
    status_before_risk: str | None = None
    vendor: str | None = None
    purpose: str | None = None
    remarks: str | None = None
    application_date: date | None = None
    cancellation_date: date | None = None
    department_id: UUID | None = None
    pending_review: bool = False
    registrant: EmployeeBrief | None = None
    current_user: EmployeeBrief | None = None
    row_version: int
    created_at: datetime
    updated_at: datetime


class PhoneDetail(PhoneRead):
    usage_history: list[UsageHistoryRead] = []
    risk_cases: list[RiskCaseRead] = []


class PhoneListResponse(CamelModel):
    items: list[PhoneRead]
    total: int
    page: int
    per_page: int


class RiskPhoneRead(PhoneRead):
    open_risk_cases: list[RiskCaseRead] = []
