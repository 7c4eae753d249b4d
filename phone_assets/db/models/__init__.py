"""SQLAlchemy ORM models."""

from phone_assets.db.models.directory import Department, Employee
from phone_assets.db.models.jobs import Job
from phone_assets.db.models.phones import PhoneNumber, PhoneUsageHistory, RiskCase
from phone_assets.db.models.verification import (
    PhoneVerificationRecord,
    UnlistedPhoneReport,
    VerificationCampaign,
    VerificationSubmission,
    VerificationToken,
)

__all__ = [
    "Department",
    "Employee",
    "Job",
    "PhoneNumber",
    "PhoneUsageHistory",
    "PhoneVerificationRecord",
    "RiskCase",
    "UnlistedPhoneReport",
    "VerificationCampaign",
    "VerificationSubmission",
    "VerificationToken",
]
