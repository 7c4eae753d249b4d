"""Verification campaign enums."""

from enum import Enum


class CampaignScope(str, Enum):
    """How a campaign resolves its target employees."""

    ALL_USERS = "all_users"
    DEPARTMENT_IDS = "department_ids"
    EMPLOYEE_IDS = "employee_ids"


class CampaignStatus(str, Enum):
    """Status of a verification campaign."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


TERMINAL_CAMPAIGN_STATUSES = frozenset(
    {
        CampaignStatus.COMPLETED,
        CampaignStatus.COMPLETED_WITH_ERRORS,
        CampaignStatus.FAILED,
    }
)


class VerificationAction(str, Enum):
    """Employee answer for one listed phone."""

    CONFIRM_USAGE = "confirm_usage"
    REPORT_ISSUE = "report_issue"


class AdminActionStatus(str, Enum):
    """Admin follow-up state of a reported issue."""

    PENDING = "pending"
    HANDLED = "handled"
