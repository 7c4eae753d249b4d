"""Phone lifecycle transition rules."""

from phone_assets.core.exceptions import TransitionRejected, ValidationError
from phone_assets.db.enums import PhoneStatus
from phone_assets.db.models import PhoneNumber

S = PhoneStatus

# Statuses a phone may be created in. in_use requires an assignment,
# risk/report states are reached only through detection or verification.
CREATION_STATUSES = frozenset(
    {S.IDLE, S.PENDING_DEACTIVATION_ADMIN, S.SUSPENDED, S.CARD_REPLACING}
)

# Targets reachable through a plain status update. Assignment (idle/deactivated -> in_use),
# unassignment and risk handling have their own operations.
ALLOWED_TRANSITIONS: dict[PhoneStatus, frozenset[PhoneStatus]] = {
    S.IDLE: frozenset(
        {
            S.IDLE,
            S.PENDING_DEACTIVATION_ADMIN,
            S.PENDING_DEACTIVATION_USER,
            S.USER_REPORTED,
            S.DEACTIVATED,
            S.SUSPENDED,
            S.CARD_REPLACING,
        }
    ),
    S.IN_USE: frozenset(
        {
            S.IN_USE,
            S.PENDING_DEACTIVATION_ADMIN,
            S.PENDING_DEACTIVATION_USER,
            S.USER_REPORTED,
            S.DEACTIVATED,
            S.SUSPENDED,
            S.CARD_REPLACING,
        }
    ),
    S.PENDING_DEACTIVATION_USER: frozenset(
        {
            S.PENDING_DEACTIVATION_USER,
            S.IN_USE,
            S.USER_REPORTED,
            S.DEACTIVATED,
            S.SUSPENDED,
            S.CARD_REPLACING,
        }
    ),
    S.PENDING_DEACTIVATION_ADMIN: frozenset(
        {
            S.PENDING_DEACTIVATION_ADMIN,
            S.IN_USE,
            S.USER_REPORTED,
            S.DEACTIVATED,
            S.SUSPENDED,
            S.CARD_REPLACING,
        }
    ),
    S.USER_REPORTED: frozenset(
        {
            S.USER_REPORTED,
            S.IN_USE,
            S.PENDING_DEACTIVATION_ADMIN,
            S.PENDING_DEACTIVATION_USER,
            S.DEACTIVATED,
            S.SUSPENDED,
            S.CARD_REPLACING,
        }
    ),
    S.DEACTIVATED: frozenset(
        {
            S.DEACTIVATED,
            S.IDLE,
            S.PENDING_DEACTIVATION_ADMIN,
            S.PENDING_DEACTIVATION_USER,
            S.USER_REPORTED,
            S.SUSPENDED,
            S.CARD_REPLACING,
        }
    ),
    # Leaves only through handle_risk
    S.RISK_PENDING: frozenset({S.RISK_PENDING}),
    S.SUSPENDED: frozenset(
        {
            S.SUSPENDED,
            S.IDLE,
            S.IN_USE,
            S.PENDING_DEACTIVATION_ADMIN,
            S.PENDING_DEACTIVATION_USER,
            S.DEACTIVATED,
        }
    ),
    S.CARD_REPLACING: frozenset(
        {
            S.CARD_REPLACING,
            S.IDLE,
            S.IN_USE,
            S.PENDING_DEACTIVATION_ADMIN,
            S.PENDING_DEACTIVATION_USER,
            S.DEACTIVATED,
        }
    ),
}

_missing = set(PhoneStatus) - set(ALLOWED_TRANSITIONS)
if _missing:
    raise RuntimeError(
        f"Transition table missing statuses: {sorted(s.value for s in _missing)}"
    )

ASSIGNABLE_STATUSES = frozenset({S.IDLE, S.DEACTIVATED})
RISK_STATUSES = frozenset({S.RISK_PENDING, S.USER_REPORTED})
# Entering these ends the current user's usage period
RELEASING_STATUSES = frozenset({S.IDLE, S.DEACTIVATED})
# Registrant departure does not flag phones already in these states
RISK_EXEMPT_STATUSES = frozenset({S.DEACTIVATED, S.RISK_PENDING})


def parse_status(value: str | PhoneStatus) -> PhoneStatus:
    try:
        return PhoneStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown phone status: {value}")


def is_transition_allowed(current: str | PhoneStatus, target: str | PhoneStatus) -> bool:
    return PhoneStatus(target) in ALLOWED_TRANSITIONS[PhoneStatus(current)]


def check_transition(current: str | PhoneStatus, target: str | PhoneStatus) -> PhoneStatus:
    """Return the parsed target status or raise TransitionRejected."""
    current_status = parse_status(current)
    target_status = parse_status(target)
    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise TransitionRejected(current_status.value, target_status.value)
    return target_status


def check_creation_status(status: str | PhoneStatus) -> PhoneStatus:
    parsed = parse_status(status)
    if parsed not in CREATION_STATUSES:
        allowed = ", ".join(sorted(s.value for s in CREATION_STATUSES))
        raise ValidationError(
            f"A new number cannot start as {parsed.value}; allowed: {allowed}"
        )
    return parsed


def enter_risk_state(phone: PhoneNumber, target: PhoneStatus) -> None:
    """Move a phone into risk_pending/user_reported, remembering where it came from."""
    if PhoneStatus(phone.status) not in RISK_STATUSES:
        phone.status_before_risk = phone.status
    phone.status = target.value


def restore_status(phone: PhoneNumber) -> PhoneStatus:
    """Status a phone returns to when its risk is dismissed by changing the applicant."""
    previous = phone.status_before_risk
    if previous and PhoneStatus(previous) not in RISK_STATUSES:
        restored = PhoneStatus(previous)
        if restored == S.IN_USE and phone.current_user_id is None:
            return S.IDLE
        return restored
    return S.IN_USE if phone.current_user_id else S.IDLE
