"""Verification campaign schemas for request/response validation."""
from datetime import datetime
from uuid import UUID

from pydantic import Field

from phone_assets.db.enums import CampaignScope, VerificationAction
from phone_assets.schemas.base import CamelModel


# =============================================================================
# Campaigns (admin)
# =============================================================================

class CampaignCreate(CamelModel):
    """Start a campaign. scopeValues are department ids or employee codes depending on scope."""
    scope: CampaignScope
    scope_values: list[str] | None = None
    duration_days: int
    created_by: str | None = None


class CampaignCreated(CamelModel):
    batch_id: UUID
    job_id: UUID | None = None


class ErrorSummaryEntry(CamelModel):
    employee_id: str | None = None
    employee_name: str | None = None
    email_address: str | None = None
    reason: str


class BatchStatus(CamelModel):
    """Single-row snapshot of a campaign's progress."""
    batch_id: UUID
    status: str
    scope_type: str
    scope_values: list[str] = []
    duration_days: int
    total_employees_to_process: int
    tokens_generated_count: int
    emails_attempted_count: int
    emails_succeeded_count: int
    emails_failed_count: int
    resend_attempted_count: int = 0
    resend_succeeded_count: int = 0
    submitted_count: int = 0
    error_summary: list[ErrorSummaryEntry] = []
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class BatchListResponse(CamelModel):
    items: list[BatchStatus]
    total: int


class ResendRequest(CamelModel):
    employee_ids: list[str] | None = None


class ResendResult(CamelModel):
    total_attempted: int
    success_count: int
    failed_count: int
    success_emails: list[str] = []
    failed_emails: list[str] = []


# =============================================================================
# Employee-facing (token)
# =============================================================================

class VerificationEmployee(CamelModel):
    employee_id: str
    full_name: str
    email: str | None = None
    department_id: UUID | None = None
    department_name: str | None = None


class VerificationPhone(CamelModel):
    id: UUID
    number: str
    status: str
    purpose: str | None = None
    vendor: str | None = None
    is_registrant: bool
    is_current_user: bool


class UnlistedReportRead(CamelModel):
    id: UUID
    campaign_id: UUID
    phone_number: str
    purpose: str
    comment: str | None = None
    reported_at: datetime


class EmployeeInfo(CamelModel):
    employee: VerificationEmployee
    batch_id: UUID
    expires_at: datetime
    phones: list[VerificationPhone]
    previously_reported_unlisted: list[UnlistedReportRead] = []


class VerifiedNumberIn(CamelModel):
    mobile_number_id: UUID
    action: VerificationAction | None = None
    purpose: str | None = None
    issue_category: str | None = None
    user_comment: str | None = None


class UnlistedNumberIn(CamelModel):
    phone_number: str
    purpose: str | None = None
    user_comment: str | None = None


class SubmissionRequest(CamelModel):
    verified_numbers: list[VerifiedNumberIn] = Field(default_factory=list)
    unlisted_numbers: list[UnlistedNumberIn] = Field(default_factory=list)


class SubmissionResult(CamelModel):
    submission_id: UUID
    confirmed_count: int
    reported_count: int
    unlisted_count: int


# =============================================================================
# Results (admin)
# =============================================================================

class ConfirmedPhone(CamelModel):
    phone_id: UUID
    phone_number: str
    department: str | None = None
    current_user: str | None = None
    status: str
    purpose: str | None = None
    confirmed_by: str
    confirmed_by_employee_id: str
    confirmed_at: datetime


class ReportedIssue(CamelModel):
    issue_id: UUID
    phone_id: UUID
    phone_number: str
    reported_by: str
    reported_by_employee_id: str
    comment: str | None = None
    issue_category: str | None = None
    purpose: str | None = None
    original_status: str
    current_status: str
    admin_action_status: str
    reported_at: datetime


class PendingPhone(CamelModel):
    phone_id: UUID
    phone_number: str
    status: str
    purpose: str | None = None


class PendingUser(CamelModel):
    employee_id: str
    full_name: str
    email: str | None = None
    department: str | None = None
    expires_at: datetime
    expired: bool
    pending_phones: list[PendingPhone] = []


class UnlistedNumberResult(CamelModel):
    id: UUID
    phone_number: str
    purpose: str
    comment: str | None = None
    reported_by: str
    reported_by_employee_id: str
    phone_id: UUID | None = None
    reported_at: datetime


class ResultsSummary(CamelModel):
    total_phones_count: int
    confirmed_phones_count: int
    reported_issues_count: int
    pending_phones_count: int
    pending_users_count: int
    newly_reported_phones_count: int


class VerificationResults(CamelModel):
    batch_id: UUID
    summary: ResultsSummary
    confirmed_phones: list[ConfirmedPhone]
    reported_issues: list[ReportedIssue]
    pending_users: list[PendingUser]
    unlisted_numbers: list[UnlistedNumberResult]
