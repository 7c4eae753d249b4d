"""Campaign results: confirmed phones, reported issues, pending users, unlisted numbers.

Always computed from live rows; phones can change between campaign creation
and the time an admin looks at results.
"""
import logging
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from phone_assets.core.exceptions import NotFound
from phone_assets.db.enums import AdminActionStatus, PhoneStatus, VerificationAction
from phone_assets.db.models import (
    Employee,
    PhoneNumber,
    PhoneVerificationRecord,
    UnlistedPhoneReport,
    VerificationToken,
)
from phone_assets.schemas.verification import (
    ConfirmedPhone,
    PendingPhone,
    PendingUser,
    ReportedIssue,
    ResultsSummary,
    UnlistedNumberResult,
    VerificationResults,
)
from phone_assets.services import directory_service, phone_service, verification_campaign_service
from phone_assets.utils import department_tree
from phone_assets.utils.datetime_utils import ensure_utc, is_expired, utcnow

logger = logging.getLogger(__name__)


def _issue_status(record: PhoneVerificationRecord, phone: PhoneNumber) -> str:
    """Handled once an admin acted on it or the phone has moved out of user_reported."""
    if record.admin_action_status == AdminActionStatus.HANDLED.value:
        return AdminActionStatus.HANDLED.value
    if phone.status != PhoneStatus.USER_REPORTED.value:
        return AdminActionStatus.HANDLED.value
    return AdminActionStatus.PENDING.value


def _department_name(phone: PhoneNumber, employee: Employee) -> str | None:
    if phone.department is not None:
        return phone.department.name
    if employee.department is not None:
        return employee.department.name
    return None


def get_results(
    db: Session,
    campaign_id: UUID,
    employee_code: str | None = None,
    department_id: UUID | None = None,
) -> VerificationResults:
    campaign = verification_campaign_service.get_campaign(db, campaign_id)

    tokens_query = (
        db.query(VerificationToken)
        .join(Employee, VerificationToken.employee_id == Employee.id)
        .options(joinedload(VerificationToken.employee).joinedload(Employee.department))
        .filter(VerificationToken.campaign_id == campaign.id)
    )
    if employee_code:
        if directory_service.find_employee(db, employee_code) is None:
            raise NotFound(f"Employee {employee_code} not found")
        tokens_query = tokens_query.filter(Employee.employee_id == employee_code)
    if department_id:
        tree = directory_service.load_department_tree(db)
        if department_id not in tree:
            raise NotFound(f"Department {department_id} not found")
        scope = department_tree.descendants(tree, department_id)
        tokens_query = tokens_query.filter(Employee.department_id.in_(list(scope)))

    tokens = tokens_query.order_by(Employee.employee_id).all()
    employee_ids = [t.employee_id for t in tokens]

    records = []
    if employee_ids:
        records = (
            db.query(PhoneVerificationRecord)
            .options(
                joinedload(PhoneVerificationRecord.phone).joinedload(PhoneNumber.current_user),
                joinedload(PhoneVerificationRecord.phone).joinedload(PhoneNumber.department),
                joinedload(PhoneVerificationRecord.employee).joinedload(Employee.department),
            )
            .filter(
                PhoneVerificationRecord.campaign_id == campaign.id,
                PhoneVerificationRecord.employee_id.in_(employee_ids),
            )
            .order_by(PhoneVerificationRecord.created_at)
            .all()
        )

    confirmed: list[ConfirmedPhone] = []
    reported: list[ReportedIssue] = []
    for record in records:
        phone = record.phone
        employee = record.employee
        if record.action == VerificationAction.CONFIRM_USAGE.value:
            confirmed.append(
                ConfirmedPhone(
                    phone_id=phone.id,
                    phone_number=phone.number,
                    department=_department_name(phone, employee),
                    current_user=phone.current_user.full_name if phone.current_user else None,
                    status=phone.status,
                    purpose=record.purpose,
                    confirmed_by=employee.full_name,
                    confirmed_by_employee_id=employee.employee_id,
                    confirmed_at=ensure_utc(record.created_at),
                )
            )
        else:
            reported.append(
                ReportedIssue(
                    issue_id=record.id,
                    phone_id=phone.id,
                    phone_number=phone.number,
                    reported_by=employee.full_name,
                    reported_by_employee_id=employee.employee_id,
                    comment=record.comment,
                    issue_category=record.issue_category,
                    purpose=record.purpose,
                    original_status=record.original_status,
                    current_status=phone.status,
                    admin_action_status=_issue_status(record, phone),
                    reported_at=ensure_utc(record.created_at),
                )
            )

    now = utcnow()
    pending_users: list[PendingUser] = []
    for token in tokens:
        if token.consumed:
            continue
        employee = token.employee
        phones = phone_service.phones_for_employee(db, employee.id)
        pending_users.append(
            PendingUser(
                employee_id=employee.employee_id,
                full_name=employee.full_name,
                email=employee.email,
                department=employee.department.name if employee.department else None,
                expires_at=ensure_utc(token.expires_at),
                expired=is_expired(token.expires_at, now=now),
                pending_phones=[
                    PendingPhone(phone_id=p.id, phone_number=p.number, status=p.status, purpose=p.purpose)
                    for p in phones
                ],
            )
        )

    unlisted_rows = []
    if employee_ids:
        unlisted_rows = (
            db.query(UnlistedPhoneReport)
            .options(joinedload(UnlistedPhoneReport.employee))
            .filter(
                UnlistedPhoneReport.campaign_id == campaign.id,
                UnlistedPhoneReport.employee_id.in_(employee_ids),
            )
            .order_by(UnlistedPhoneReport.created_at)
            .all()
        )
    unlisted = [
        UnlistedNumberResult(
            id=r.id,
            phone_number=r.phone_number,
            purpose=r.purpose,
            comment=r.comment,
            reported_by=r.employee.full_name,
            reported_by_employee_id=r.employee.employee_id,
            phone_id=r.phone_id,
            reported_at=ensure_utc(r.created_at),
        )
        for r in unlisted_rows
    ]

    pending_phones_count = sum(len(u.pending_phones) for u in pending_users)
    summary = ResultsSummary(
        total_phones_count=len(confirmed) + len(reported) + pending_phones_count,
        confirmed_phones_count=len(confirmed),
        reported_issues_count=len(reported),
        pending_phones_count=pending_phones_count,
        pending_users_count=len(pending_users),
        newly_reported_phones_count=len(unlisted),
    )
    return VerificationResults(
        batch_id=campaign.id,
        summary=summary,
        confirmed_phones=confirmed,
        reported_issues=reported,
        pending_users=pending_users,
        unlisted_numbers=unlisted,
    )
