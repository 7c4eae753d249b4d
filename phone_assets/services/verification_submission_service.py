"""Employee-facing verification: token lookup and submission."""
import logging
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from phone_assets.core.exceptions import (
    NotFound,
    PersistenceConflict,
    TokenAlreadyConsumed,
    TokenExpired,
    ValidationError,
)
from phone_assets.db.enums import (
    AdminActionStatus,
    PhoneStatus,
    RiskReason,
    VerificationAction,
)
from phone_assets.db.models import (
    Employee,
    PhoneNumber,
    PhoneVerificationRecord,
    UnlistedPhoneReport,
    VerificationSubmission,
    VerificationToken,
)
from phone_assets.db.transactions import commit_or_conflict
from phone_assets.schemas.verification import (
    EmployeeInfo,
    SubmissionRequest,
    SubmissionResult,
    UnlistedReportRead,
    VerificationEmployee,
    VerificationPhone,
)
from phone_assets.services import phone_service, phone_status_service, risk_service
from phone_assets.utils.datetime_utils import ensure_utc, is_expired, utcnow
from phone_assets.utils.phone_numbers import is_valid_phone_number, normalize_phone_number

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Your submission collided with another update, please retry"


def _clean(value: str | None) -> str:
    return (value or "").strip()


def get_token_row(db: Session, token: str) -> VerificationToken | None:
    """Fetch a token row without applying validity rules."""
    if not token:
        return None
    return (
        db.query(VerificationToken)
        .options(joinedload(VerificationToken.employee).joinedload(Employee.department))
        .filter(VerificationToken.token == token)
        .first()
    )


def get_valid_token(db: Session, token: str) -> VerificationToken:
    record = get_token_row(db, token)
    if not record:
        raise NotFound("Verification link is invalid")
    if record.consumed:
        raise TokenAlreadyConsumed()
    if is_expired(record.expires_at):
        raise TokenExpired()
    return record


def get_employee_info(db: Session, token: str) -> EmployeeInfo:
    """What the employee sees when opening their link."""
    record = get_valid_token(db, token)
    employee = record.employee
    phones = phone_service.phones_for_employee(db, employee.id)

    previous = (
        db.query(UnlistedPhoneReport)
        .filter(
            UnlistedPhoneReport.employee_id == employee.id,
            UnlistedPhoneReport.campaign_id != record.campaign_id,
        )
        .order_by(UnlistedPhoneReport.created_at.desc())
        .all()
    )

    return EmployeeInfo(
        employee=VerificationEmployee(
            employee_id=employee.employee_id,
            full_name=employee.full_name,
            email=employee.email,
            department_id=employee.department_id,
            department_name=employee.department.name if employee.department else None,
        ),
        batch_id=record.campaign_id,
        expires_at=ensure_utc(record.expires_at),
        phones=[
            VerificationPhone(
                id=p.id,
                number=p.number,
                status=p.status,
                purpose=p.purpose,
                vendor=p.vendor,
                is_registrant=p.registrant_id == employee.id,
                is_current_user=p.current_user_id == employee.id,
            )
            for p in phones
        ],
        previously_reported_unlisted=[
            UnlistedReportRead(
                id=r.id,
                campaign_id=r.campaign_id,
                phone_number=r.phone_number,
                purpose=r.purpose,
                comment=r.comment,
                reported_at=ensure_utc(r.created_at),
            )
            for r in previous
        ],
    )


def _validate_payload(
    db: Session, employee: Employee, payload: SubmissionRequest
) -> tuple[dict[UUID, PhoneNumber], list[str]]:
    """
    Check the whole payload before anything is written.

    Returns the referenced phones by id and the normalized unlisted numbers.
    """
    owned = {p.id: p for p in phone_service.phones_for_employee(db, employee.id)}

    seen: set[UUID] = set()
    for item in payload.verified_numbers:
        if item.mobile_number_id in seen:
            raise ValidationError(f"Phone {item.mobile_number_id} appears more than once")
        seen.add(item.mobile_number_id)

        phone = owned.get(item.mobile_number_id)
        if phone is None:
            raise ValidationError(f"Phone {item.mobile_number_id} is not listed for you")
        if item.action is None:
            raise ValidationError(f"Choose an action for {phone.number}")
        if item.action == VerificationAction.CONFIRM_USAGE:
            if not _clean(item.purpose):
                raise ValidationError(f"Purpose is required to confirm {phone.number}")
        elif item.action == VerificationAction.REPORT_ISSUE:
            if not _clean(item.issue_category):
                raise ValidationError(f"Issue category is required to report {phone.number}")
            phone_status_service.check_transition(phone.status, PhoneStatus.USER_REPORTED)

    # Every listed phone needs an answer, otherwise it vanishes from the results
    unanswered = sorted(p.number for p in owned.values() if p.id not in seen)
    if unanswered:
        raise ValidationError(f"Confirm or report every listed number: {', '.join(unanswered)}")

    listed_numbers = {p.number for p in owned.values()}
    unlisted: list[str] = []
    for item in payload.unlisted_numbers:
        number = normalize_phone_number(item.phone_number)
        if not is_valid_phone_number(number):
            raise ValidationError(f"Invalid phone number format: {item.phone_number}")
        if not _clean(item.purpose):
            raise ValidationError(f"Purpose is required for {number}")
        if number in unlisted:
            raise ValidationError(f"Phone number {number} appears more than once")
        if number in listed_numbers:
            raise ValidationError(f"Phone number {number} is already listed for you")
        unlisted.append(number)

    return owned, unlisted


def _consume_token(db: Session, token_id: UUID) -> None:
    """Compare-and-set: only one submission can flip consumed from false to true."""
    result = db.execute(
        update(VerificationToken)
        .where(VerificationToken.id == token_id, VerificationToken.consumed.is_(False))
        .values(consumed=True, consumed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise TokenAlreadyConsumed()


def submit_verification(db: Session, token: str, payload: SubmissionRequest) -> SubmissionResult:
    """
    Apply an employee's verification in one transaction.

    Confirmations store the stated purpose; reports move the phone to
    user_reported and open a self_reported risk case; unlisted numbers become
    pending-review phones registered to the reporter.
    """
    record = get_valid_token(db, token)
    employee = record.employee
    owned, unlisted = _validate_payload(db, employee, payload)

    _consume_token(db, record.id)
    try:
        submission, confirmed, reported = _apply_submission(
            db, record, employee, owned, unlisted, payload
        )
    except (IntegrityError, StaleDataError) as e:
        db.rollback()
        logger.info("Submission collided for campaign=%s: %s", record.campaign_id, e)
        raise PersistenceConflict(CONFLICT_MESSAGE)

    commit_or_conflict(db, CONFLICT_MESSAGE)
    logger.info(
        "Verification submitted campaign=%s employee=%s confirmed=%d reported=%d unlisted=%d",
        record.campaign_id,
        employee.employee_id,
        confirmed,
        reported,
        len(unlisted),
    )
    return SubmissionResult(
        submission_id=submission.id,
        confirmed_count=confirmed,
        reported_count=reported,
        unlisted_count=len(unlisted),
    )


def _apply_submission(
    db: Session,
    record: VerificationToken,
    employee: Employee,
    owned: dict[UUID, PhoneNumber],
    unlisted: list[str],
    payload: SubmissionRequest,
) -> tuple[VerificationSubmission, int, int]:
    now = utcnow()
    submission = VerificationSubmission(
        token_id=record.id,
        campaign_id=record.campaign_id,
        employee_id=employee.id,
        submitted_at=now,
    )
    db.add(submission)
    db.flush()

    confirmed = reported = 0
    for item in payload.verified_numbers:
        phone = owned[item.mobile_number_id]
        original_status = phone.status
        verification = PhoneVerificationRecord(
            submission_id=submission.id,
            campaign_id=record.campaign_id,
            phone_id=phone.id,
            employee_id=employee.id,
            action=item.action.value,
            purpose=_clean(item.purpose) or None,
            comment=_clean(item.user_comment) or None,
            original_status=original_status,
            created_at=now,
        )
        if item.action == VerificationAction.CONFIRM_USAGE:
            phone.purpose = verification.purpose
            verification.admin_action_status = AdminActionStatus.HANDLED.value
            confirmed += 1
        else:
            verification.issue_category = _clean(item.issue_category)
            verification.admin_action_status = AdminActionStatus.PENDING.value
            phone_service.mark_user_reported(db, phone)
            risk_service.open_case(
                db,
                phone.id,
                RiskReason.SELF_REPORTED,
                employee_id=employee.id,
                note=verification.comment,
            )
            reported += 1
        db.add(verification)

    for item, number in zip(payload.unlisted_numbers, unlisted):
        phone = phone_service.get_phone_by_number(db, number)
        if phone is None:
            phone = PhoneNumber(
                number=number,
                status=PhoneStatus.IDLE.value,
                registrant_id=employee.id,
                department_id=employee.department_id,
                purpose=_clean(item.purpose),
                remarks=_clean(item.user_comment) or None,
                pending_review=True,
            )
            db.add(phone)
            db.flush()
        db.add(
            UnlistedPhoneReport(
                submission_id=submission.id,
                campaign_id=record.campaign_id,
                employee_id=employee.id,
                phone_id=phone.id,
                phone_number=number,
                purpose=_clean(item.purpose),
                comment=_clean(item.user_comment) or None,
                created_at=now,
            )
        )

    db.flush()
    return submission, confirmed, reported
