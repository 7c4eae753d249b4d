"""Phone number lifecycle operations (create, assign, update, risk handling)."""
import logging
from datetime import date
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, aliased, joinedload

from phone_assets.core.exceptions import NotFound, TransitionRejected, ValidationError
from phone_assets.db.enums import AdminActionStatus, PhoneStatus, RiskAction, VerificationAction
from phone_assets.db.models import (
    Employee,
    PhoneNumber,
    PhoneUsageHistory,
    PhoneVerificationRecord,
)
from phone_assets.db.transactions import commit_or_conflict
from phone_assets.schemas.phone import HandleRiskRequest, PhoneAssign, PhoneCreate, PhoneUpdate
from phone_assets.services import directory_service, phone_status_service, risk_service
from phone_assets.services.phone_status_service import (
    ASSIGNABLE_STATUSES,
    RELEASING_STATUSES,
    RISK_STATUSES,
)
from phone_assets.utils.datetime_utils import local_today, utcnow
from phone_assets.utils.masking import mask_phone_number
from phone_assets.utils.phone_numbers import is_valid_phone_number, normalize_phone_number

logger = logging.getLogger(__name__)


# =============================================================================
# Reads
# =============================================================================

def get_phone(db: Session, phone_id: UUID, for_update: bool = False) -> PhoneNumber:
    query = db.query(PhoneNumber).filter(PhoneNumber.id == phone_id)
    if for_update:
        query = query.with_for_update()
    phone = query.first()
    if not phone:
        raise NotFound(f"Phone number {phone_id} not found")
    return phone


def get_phone_by_number(db: Session, number: str) -> PhoneNumber | None:
    return (
        db.query(PhoneNumber)
        .filter(PhoneNumber.number == normalize_phone_number(number))
        .first()
    )


def list_phones(
    db: Session,
    status: str | None = None,
    search: str | None = None,
    registrant_status: str | None = None,
    pending_review: bool | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[PhoneNumber], int]:
    """Paginated phone list with status, free-text and registrant-status filters."""
    query = db.query(PhoneNumber).options(
        joinedload(PhoneNumber.registrant),
        joinedload(PhoneNumber.current_user),
    )

    if status:
        query = query.filter(PhoneNumber.status == phone_status_service.parse_status(status).value)
    if pending_review is not None:
        query = query.filter(PhoneNumber.pending_review.is_(pending_review))

    if search or registrant_status:
        registrant = aliased(Employee)
        current_user = aliased(Employee)
        query = query.outerjoin(registrant, PhoneNumber.registrant_id == registrant.id).outerjoin(
            current_user, PhoneNumber.current_user_id == current_user.id
        )
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    PhoneNumber.number.ilike(pattern),
                    PhoneNumber.purpose.ilike(pattern),
                    registrant.full_name.ilike(pattern),
                    registrant.employee_id.ilike(pattern),
                    current_user.full_name.ilike(pattern),
                    current_user.employee_id.ilike(pattern),
                )
            )
        if registrant_status:
            query = query.filter(registrant.employment_status == registrant_status)

    total = query.count()
    phones = (
        query.order_by(PhoneNumber.created_at.desc(), PhoneNumber.number)
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return phones, total


def list_risk_phones(db: Session) -> list[tuple[PhoneNumber, list]]:
    """Phones awaiting admin disposition, with their open risk cases."""
    phones = (
        db.query(PhoneNumber)
        .options(joinedload(PhoneNumber.registrant), joinedload(PhoneNumber.current_user))
        .filter(PhoneNumber.status.in_([s.value for s in RISK_STATUSES]))
        .order_by(PhoneNumber.updated_at.desc())
        .all()
    )
    cases = risk_service.list_open_cases(db, [p.id for p in phones])
    return [(phone, cases.get(phone.id, [])) for phone in phones]


def get_usage_history(db: Session, phone_id: UUID) -> list[PhoneUsageHistory]:
    get_phone(db, phone_id)
    return (
        db.query(PhoneUsageHistory)
        .options(joinedload(PhoneUsageHistory.employee))
        .filter(PhoneUsageHistory.phone_id == phone_id)
        .order_by(PhoneUsageHistory.start_date, PhoneUsageHistory.created_at)
        .all()
    )


def phones_for_employee(db: Session, employee_id: UUID) -> list[PhoneNumber]:
    """Phones an employee uses or registered, excluding deactivated ones."""
    return (
        db.query(PhoneNumber)
        .filter(
            or_(
                PhoneNumber.current_user_id == employee_id,
                PhoneNumber.registrant_id == employee_id,
            ),
            PhoneNumber.status != PhoneStatus.DEACTIVATED.value,
        )
        .order_by(PhoneNumber.number)
        .all()
    )


# =============================================================================
# Writes
# =============================================================================

def _validate_number(number: str) -> str:
    normalized = normalize_phone_number(number)
    if not is_valid_phone_number(normalized):
        raise ValidationError(f"Invalid phone number format: {number}")
    return normalized


def _open_usage(db: Session, phone_id: UUID) -> list[PhoneUsageHistory]:
    return (
        db.query(PhoneUsageHistory)
        .filter(PhoneUsageHistory.phone_id == phone_id, PhoneUsageHistory.end_date.is_(None))
        .all()
    )


def _close_open_usage(db: Session, phone: PhoneNumber, end_date: date) -> None:
    """Close every open usage entry; at most one is open after this."""
    for entry in _open_usage(db, phone.id):
        entry.end_date = max(end_date, entry.start_date)


def _release_current_user(db: Session, phone: PhoneNumber, end_date: date) -> None:
    _close_open_usage(db, phone, end_date)
    phone.current_user_id = None


def create_phone(db: Session, data: PhoneCreate) -> PhoneNumber:
    """Register a new number. in_use and risk states cannot be created directly."""
    number = _validate_number(data.number)
    status = phone_status_service.check_creation_status(data.status)
    if get_phone_by_number(db, number):
        raise ValidationError(f"Phone number {number} already exists")
    registrant = directory_service.find_employee(db, data.registrant_employee_id)
    if not registrant:
        raise ValidationError(f"Registrant {data.registrant_employee_id} not found")

    phone = PhoneNumber(
        number=number,
        status=status.value,
        registrant_id=registrant.id,
        department_id=data.department_id or registrant.department_id,
        vendor=data.vendor,
        purpose=data.purpose,
        remarks=data.remarks,
        application_date=data.application_date,
    )
    db.add(phone)
    commit_or_conflict(db, f"Phone number {number} already exists")
    db.refresh(phone)
    logger.info("Created phone %s status=%s", mask_phone_number(number), status.value)
    return phone


def assign_phone(db: Session, phone_id: UUID, data: PhoneAssign) -> PhoneNumber:
    phone = get_phone(db, phone_id, for_update=True)
    current = PhoneStatus(phone.status)
    if current not in ASSIGNABLE_STATUSES:
        raise ValidationError(
            f"Only idle or deactivated numbers can be assigned (current: {current.value})"
        )
    employee = directory_service.get_active_employee(db, data.employee_id)

    start = data.assignment_date or local_today()
    # Stray entry from an earlier holder ends where the new one starts
    _close_open_usage(db, phone, start)
    phone.status = PhoneStatus.IN_USE.value
    phone.current_user_id = employee.id
    phone.cancellation_date = None
    if data.purpose:
        phone.purpose = data.purpose
    db.add(PhoneUsageHistory(phone_id=phone.id, employee_id=employee.id, start_date=start))

    commit_or_conflict(db)
    db.refresh(phone)
    logger.info("Assigned phone %s to employee=%s", mask_phone_number(phone.number), employee.employee_id)
    return phone


def unassign_phone(db: Session, phone_id: UUID, reclaim_date: date | None = None) -> PhoneNumber:
    phone = get_phone(db, phone_id, for_update=True)
    if phone.status != PhoneStatus.IN_USE.value:
        raise ValidationError(f"Only in-use numbers can be reclaimed (current: {phone.status})")

    _release_current_user(db, phone, reclaim_date or local_today())
    phone.status = PhoneStatus.IDLE.value

    commit_or_conflict(db)
    db.refresh(phone)
    return phone


def update_phone(db: Session, phone_id: UUID, data: PhoneUpdate) -> PhoneNumber:
    """Apply a partial update; a status change must be allowed by the transition table."""
    phone = get_phone(db, phone_id, for_update=True)
    fields = data.model_dump(exclude_unset=True)

    new_status = fields.pop("status", None)
    if new_status is not None:
        target = phone_status_service.check_transition(phone.status, new_status)
        if target == PhoneStatus.DEACTIVATED:
            if not (fields.get("cancellation_date") or phone.cancellation_date):
                raise ValidationError("Cancellation date is required to deactivate a number")
        if target == PhoneStatus.IN_USE and not phone.current_user_id:
            raise ValidationError("Number has no current user; assign it instead")
        if target in RISK_STATUSES and PhoneStatus(phone.status) != target:
            phone_status_service.enter_risk_state(phone, target)
        else:
            phone.status = target.value
        if target in RELEASING_STATUSES and phone.current_user_id:
            _release_current_user(db, phone, local_today())

    registrant_code = fields.pop("registrant_employee_id", None)
    if registrant_code is not None:
        registrant = directory_service.find_employee(db, registrant_code)
        if not registrant:
            raise ValidationError(f"Registrant {registrant_code} not found")
        phone.registrant_id = registrant.id

    for field in ("vendor", "purpose", "remarks", "application_date", "cancellation_date", "department_id"):
        if field in fields:
            setattr(phone, field, fields[field])

    commit_or_conflict(db)
    db.refresh(phone)
    return phone


def mark_user_reported(db: Session, phone: PhoneNumber) -> None:
    """Move a phone to user_reported through the transition table. Does not commit."""
    target = phone_status_service.check_transition(phone.status, PhoneStatus.USER_REPORTED)
    if PhoneStatus(phone.status) != target:
        phone_status_service.enter_risk_state(phone, target)


def handle_risk(db: Session, phone_id: UUID, data: HandleRiskRequest) -> PhoneNumber:
    """
    Resolve a risk phone.

    change_applicant: new Active registrant, previous status restored.
    reclaim: back to idle, current user cleared.
    deactivate: deactivated with a cancellation date, current user cleared.
    Open risk cases are closed and pending reported issues marked handled.
    """
    phone = get_phone(db, phone_id, for_update=True)
    current = PhoneStatus(phone.status)
    if current not in RISK_STATUSES:
        raise TransitionRejected(
            current.value,
            _risk_action_target(data.action).value,
            f"Number is not awaiting risk handling (current: {current.value})",
        )

    today = local_today()
    if data.action == RiskAction.CHANGE_APPLICANT:
        if not data.new_applicant_employee_id:
            raise ValidationError("New applicant employee id is required")
        applicant = directory_service.get_active_employee(db, data.new_applicant_employee_id)
        phone.registrant_id = applicant.id
        phone.status = phone_status_service.restore_status(phone).value
    elif data.action == RiskAction.RECLAIM:
        _release_current_user(db, phone, today)
        phone.status = PhoneStatus.IDLE.value
    elif data.action == RiskAction.DEACTIVATE:
        _release_current_user(db, phone, today)
        phone.status = PhoneStatus.DEACTIVATED.value
        phone.cancellation_date = data.cancellation_date or today
    phone.status_before_risk = None

    now = utcnow()
    resolved = risk_service.resolve_open_cases(
        db, phone.id, data.action.value, data.operator, data.note, now
    )
    pending_issues = db.scalars(
        select(PhoneVerificationRecord).where(
            PhoneVerificationRecord.phone_id == phone.id,
            PhoneVerificationRecord.action == VerificationAction.REPORT_ISSUE.value,
            PhoneVerificationRecord.admin_action_status == AdminActionStatus.PENDING.value,
        )
    ).all()
    for record in pending_issues:
        record.admin_action_status = AdminActionStatus.HANDLED.value
        record.handled_at = now

    commit_or_conflict(db)
    db.refresh(phone)
    logger.info(
        "Handled risk phone %s action=%s cases=%d issues=%d",
        mask_phone_number(phone.number),
        data.action.value,
        resolved,
        len(pending_issues),
    )
    return phone


def _risk_action_target(action: RiskAction) -> PhoneStatus:
    if action == RiskAction.RECLAIM:
        return PhoneStatus.IDLE
    if action == RiskAction.DEACTIVATE:
        return PhoneStatus.DEACTIVATED
    return PhoneStatus.IN_USE


def delete_phone(db: Session, phone_id: UUID) -> None:
    phone = get_phone(db, phone_id, for_update=True)
    has_history = db.query(PhoneUsageHistory.id).filter(PhoneUsageHistory.phone_id == phone.id).first()
    if has_history:
        raise ValidationError("Numbers with usage history cannot be deleted")
    number = phone.number
    db.delete(phone)
    commit_or_conflict(db)
    logger.info("Deleted phone %s", mask_phone_number(number))
