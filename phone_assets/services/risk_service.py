"""Risk detection: flag phones whose registrant left or whose user reported a problem."""
import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from phone_assets.db.enums import EmploymentStatus, PhoneStatus, RiskReason
from phone_assets.db.models import Employee, PhoneNumber, RiskCase
from phone_assets.db.transactions import commit_or_conflict
from phone_assets.services.phone_status_service import RISK_EXEMPT_STATUSES
from phone_assets.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def get_open_case(db: Session, phone_id: UUID, reason: RiskReason) -> RiskCase | None:
    return (
        db.query(RiskCase)
        .filter(
            RiskCase.phone_id == phone_id,
            RiskCase.reason == reason.value,
            RiskCase.resolved_at.is_(None),
        )
        .first()
    )


def list_open_cases(db: Session, phone_ids: list[UUID]) -> dict[UUID, list[RiskCase]]:
    if not phone_ids:
        return {}
    cases = (
        db.query(RiskCase)
        .filter(RiskCase.phone_id.in_(phone_ids), RiskCase.resolved_at.is_(None))
        .order_by(RiskCase.detected_at)
        .all()
    )
    by_phone: dict[UUID, list[RiskCase]] = {}
    for risk_case in cases:
        by_phone.setdefault(risk_case.phone_id, []).append(risk_case)
    return by_phone


def open_case(
    db: Session,
    phone_id: UUID,
    reason: RiskReason,
    employee_id: UUID | None = None,
    note: str | None = None,
) -> RiskCase:
    """
    Open a risk case unless one is already open for (phone, reason).

    Runs in a SAVEPOINT so a concurrent insert hitting the open-case unique
    index only rolls back this insert. Does not commit.
    """
    existing = get_open_case(db, phone_id, reason)
    if existing:
        return existing

    risk_case = RiskCase(
        phone_id=phone_id,
        reason=reason.value,
        employee_id=employee_id,
        detected_at=utcnow(),
        note=note,
    )
    try:
        with db.begin_nested():
            db.add(risk_case)
    except IntegrityError:
        existing = get_open_case(db, phone_id, reason)
        if existing is None:
            raise
        logger.info("Risk case already opened concurrently phone=%s reason=%s", phone_id, reason.value)
        return existing
    return risk_case


def flag_phone_for_departure(db: Session, phone_id: UUID) -> bool:
    """
    Conditionally move one phone to risk_pending.

    A single UPDATE guarded on the current status, so two detectors racing
    on the same phone flag it exactly once. Returns True if this call flagged it.
    """
    exempt = [s.value for s in RISK_EXEMPT_STATUSES]
    result = db.execute(
        update(PhoneNumber)
        .where(PhoneNumber.id == phone_id, PhoneNumber.status.notin_(exempt))
        .values(
            status_before_risk=case(
                (
                    PhoneNumber.status == PhoneStatus.USER_REPORTED.value,
                    PhoneNumber.status_before_risk,
                ),
                else_=PhoneNumber.status,
            ),
            status=PhoneStatus.RISK_PENDING.value,
            row_version=PhoneNumber.row_version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def detect_departed_registrant(db: Session, employee: Employee) -> list[RiskCase]:
    """
    Flag every phone registered to a departed employee.

    Phones already deactivated or risk_pending are left alone, so running this
    twice yields the same state. Commits.
    """
    if employee.employment_status != EmploymentStatus.DEPARTED.value:
        return []

    exempt = [s.value for s in RISK_EXEMPT_STATUSES]
    phone_ids = db.scalars(
        select(PhoneNumber.id).where(
            PhoneNumber.registrant_id == employee.id,
            PhoneNumber.status.notin_(exempt),
        )
    ).all()

    opened: list[RiskCase] = []
    for phone_id in phone_ids:
        if not flag_phone_for_departure(db, phone_id):
            continue
        opened.append(
            open_case(db, phone_id, RiskReason.REGISTRANT_DEPARTED, employee_id=employee.id)
        )

    commit_or_conflict(db)
    if opened:
        logger.info(
            "Flagged %d phone(s) for departed registrant employee=%s",
            len(opened),
            employee.employee_id,
        )
    return opened


def sweep_departed(db: Session) -> int:
    """Re-run departure detection for every departed employee. Returns phones flagged."""
    departed = (
        db.query(Employee)
        .filter(Employee.employment_status == EmploymentStatus.DEPARTED.value)
        .all()
    )
    flagged = 0
    for employee in departed:
        flagged += len(detect_departed_registrant(db, employee))
    logger.info("Departure sweep checked %d employee(s), flagged %d phone(s)", len(departed), flagged)
    return flagged


def resolve_open_cases(
    db: Session,
    phone_id: UUID,
    action: str,
    operator: str | None,
    note: str | None,
    resolved_at: datetime,
) -> int:
    """Close every open case of a phone. Does not commit."""
    cases = (
        db.query(RiskCase)
        .filter(RiskCase.phone_id == phone_id, RiskCase.resolved_at.is_(None))
        .all()
    )
    for risk_case in cases:
        risk_case.resolution_action = action
        risk_case.resolved_by = operator
        risk_case.resolved_at = resolved_at
        if note:
            risk_case.note = note
    return len(cases)
