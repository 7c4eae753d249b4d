"""Enum definitions for application constants."""

from phone_assets.db.enums.employees import EmploymentStatus
from phone_assets.db.enums.jobs import JobStatus, JobType
from phone_assets.db.enums.phones import PhoneStatus, RiskAction, RiskReason
from phone_assets.db.enums.verification import (
    AdminActionStatus,
    CampaignScope,
    CampaignStatus,
    TERMINAL_CAMPAIGN_STATUSES,
    VerificationAction,
)

__all__ = [
    "AdminActionStatus",
    "CampaignScope",
    "CampaignStatus",
    "EmploymentStatus",
    "JobStatus",
    "JobType",
    "PhoneStatus",
    "RiskAction",
    "RiskReason",
    "TERMINAL_CAMPAIGN_STATUSES",
    "VerificationAction",
]
