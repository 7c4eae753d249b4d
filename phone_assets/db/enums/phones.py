"""Phone-number enums."""

from enum import Enum


class PhoneStatus(str, Enum):
    """Lifecycle status of a phone number."""

    IDLE = "idle"
    IN_USE = "in_use"
    PENDING_DEACTIVATION_USER = "pending_deactivation_user"
    PENDING_DEACTIVATION_ADMIN = "pending_deactivation_admin"
    USER_REPORTED = "user_reported"
    RISK_PENDING = "risk_pending"
    DEACTIVATED = "deactivated"
    SUSPENDED = "suspended"
    CARD_REPLACING = "card_replacing"


class RiskReason(str, Enum):
    """Why a phone was flagged for admin disposition."""

    REGISTRANT_DEPARTED = "registrant_departed"
    SELF_REPORTED = "self_reported"


class RiskAction(str, Enum):
    """Admin disposition of a risk phone."""

    CHANGE_APPLICANT = "change_applicant"
    RECLAIM = "reclaim"
    DEACTIVATE = "deactivate"
