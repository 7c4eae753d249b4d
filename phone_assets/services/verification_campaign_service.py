"""Verification campaign orchestration: scope resolution, token issuance, status."""
import logging
import secrets
import uuid
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from phone_assets.core.config import settings
from phone_assets.core.exceptions import NotFound, ValidationError
from phone_assets.db.enums import CampaignScope, CampaignStatus, EmploymentStatus, JobType
from phone_assets.db.models import Employee, Job, VerificationCampaign, VerificationToken
from phone_assets.db.transactions import commit_or_conflict
from phone_assets.schemas.verification import BatchStatus, CampaignCreate
from phone_assets.services import directory_service, job_service
from phone_assets.utils.datetime_utils import compute_token_expiry

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def dispatch_job_key(campaign_id: UUID) -> str:
    return f"verification_dispatch:{campaign_id}"


# =============================================================================
# Scope resolution
# =============================================================================

def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        value = (value or "").strip()
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _parse_department_ids(values: list[str]) -> list[UUID]:
    ids = []
    for value in values:
        try:
            ids.append(UUID(str(value)))
        except ValueError:
            raise ValidationError(f"Invalid department id: {value}")
    return ids


def resolve_scope(
    db: Session, scope: CampaignScope, scope_values: list[str] | None
) -> list[Employee]:
    """
    Resolve a campaign scope to a deduplicated employee list.

    The result is a snapshot: later employment changes do not alter a
    campaign created from it.
    """
    values = _dedupe(scope_values or [])

    if scope == CampaignScope.ALL_USERS:
        employees = (
            db.query(Employee)
            .filter(Employee.employment_status == EmploymentStatus.ACTIVE.value)
            .order_by(Employee.employee_id)
            .all()
        )
    elif scope == CampaignScope.DEPARTMENT_IDS:
        if not values:
            raise ValidationError("At least one department is required")
        employees = directory_service.employees_in_departments(db, _parse_department_ids(values))
    elif scope == CampaignScope.EMPLOYEE_IDS:
        if not values:
            raise ValidationError("At least one employee is required")
        found = {
            e.employee_id: e
            for e in db.query(Employee).filter(Employee.employee_id.in_(values)).all()
        }
        missing = [v for v in values if v not in found]
        if missing:
            raise ValidationError(f"Unknown employees: {', '.join(missing)}")
        departed = [v for v in values if not found[v].is_active]
        if departed:
            raise ValidationError(f"Employees have departed: {', '.join(departed)}")
        employees = [found[v] for v in values]
    else:
        raise ValidationError(f"Unknown scope: {scope}")

    unique: dict[UUID, Employee] = {}
    for employee in employees:
        unique.setdefault(employee.id, employee)
    return list(unique.values())


# =============================================================================
# Initiation
# =============================================================================

def _generate_token(db: Session, issued: set[str]) -> str:
    token = secrets.token_urlsafe(TOKEN_BYTES)
    while (
        token in issued
        or db.query(VerificationToken.id).filter(VerificationToken.token == token).first() is not None
    ):
        token = secrets.token_urlsafe(TOKEN_BYTES)
    issued.add(token)
    return token


def initiate_campaign(db: Session, data: CampaignCreate) -> tuple[VerificationCampaign, Job]:
    """
    Create a campaign, one token per employee, and the dispatch job.

    Everything is written in one transaction; the caller polls
    get_batch_status while the worker sends the emails.
    """
    if not 1 <= data.duration_days <= settings.VERIFICATION_MAX_DURATION_DAYS:
        raise ValidationError(
            f"durationDays must be between 1 and {settings.VERIFICATION_MAX_DURATION_DAYS}"
        )

    employees = resolve_scope(db, data.scope, data.scope_values)
    if not employees:
        raise ValidationError("The selected scope contains no active employees")

    campaign = VerificationCampaign(
        id=uuid.uuid4(),
        scope_type=data.scope.value,
        scope_values=_dedupe(data.scope_values or []),
        duration_days=data.duration_days,
        status=CampaignStatus.PENDING.value,
        total_employees_to_process=len(employees),
        error_summary=[],
        created_by=data.created_by,
    )
    db.add(campaign)

    expires_at = compute_token_expiry(data.duration_days)
    issued: set[str] = set()
    for employee in employees:
        db.add(
            VerificationToken(
                token=_generate_token(db, issued),
                campaign_id=campaign.id,
                employee_id=employee.id,
                expires_at=expires_at,
                consumed=False,
            )
        )

    campaign.tokens_generated_count = len(employees)
    campaign.status = CampaignStatus.IN_PROGRESS.value
    job = job_service.schedule_job(
        db,
        JobType.VERIFICATION_DISPATCH,
        payload={"campaign_id": str(campaign.id)},
        idempotency_key=dispatch_job_key(campaign.id),
        commit=False,
    )

    commit_or_conflict(db, "Could not create campaign, please retry")
    db.refresh(campaign)
    db.refresh(job)
    logger.info(
        "Verification campaign %s created scope=%s employees=%d expires_at=%s",
        campaign.id,
        campaign.scope_type,
        len(employees),
        expires_at.isoformat(),
    )
    return campaign, job


# =============================================================================
# Status
# =============================================================================

def get_campaign(db: Session, campaign_id: UUID) -> VerificationCampaign:
    campaign = db.query(VerificationCampaign).filter(VerificationCampaign.id == campaign_id).first()
    if not campaign:
        raise NotFound(f"Verification batch {campaign_id} not found")
    return campaign


def terminal_status(attempted: int, failed: int) -> CampaignStatus:
    if failed == 0:
        return CampaignStatus.COMPLETED
    if failed < attempted:
        return CampaignStatus.COMPLETED_WITH_ERRORS
    return CampaignStatus.FAILED


def _submitted_counts(db: Session, campaign_ids: list[UUID]) -> dict[UUID, int]:
    if not campaign_ids:
        return {}
    rows = (
        db.query(VerificationToken.campaign_id, func.count(VerificationToken.id))
        .filter(
            VerificationToken.campaign_id.in_(campaign_ids),
            VerificationToken.consumed.is_(True),
        )
        .group_by(VerificationToken.campaign_id)
        .all()
    )
    return {campaign_id: count for campaign_id, count in rows}


def to_batch_status(campaign: VerificationCampaign, submitted_count: int = 0) -> BatchStatus:
    return BatchStatus(
        batch_id=campaign.id,
        status=campaign.status,
        scope_type=campaign.scope_type,
        scope_values=list(campaign.scope_values or []),
        duration_days=campaign.duration_days,
        total_employees_to_process=campaign.total_employees_to_process,
        tokens_generated_count=campaign.tokens_generated_count,
        emails_attempted_count=campaign.emails_attempted_count,
        emails_succeeded_count=campaign.emails_succeeded_count,
        emails_failed_count=campaign.emails_failed_count,
        resend_attempted_count=campaign.resend_attempted_count,
        resend_succeeded_count=campaign.resend_succeeded_count,
        submitted_count=submitted_count,
        error_summary=list(campaign.error_summary or []),
        created_by=campaign.created_by,
        created_at=campaign.created_at,
        updated_at=campaign.updated_at,
        completed_at=campaign.completed_at,
    )


def get_batch_status(db: Session, campaign_id: UUID) -> BatchStatus:
    """Counters, status and errorSummary as stored in the campaign row."""
    campaign = get_campaign(db, campaign_id)
    submitted = _submitted_counts(db, [campaign.id]).get(campaign.id, 0)
    return to_batch_status(campaign, submitted)


def list_batches(
    db: Session,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[BatchStatus], int]:
    query = db.query(VerificationCampaign)
    if status:
        query = query.filter(VerificationCampaign.status == status)
    total = query.count()
    campaigns = (
        query.order_by(VerificationCampaign.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    submitted = _submitted_counts(db, [c.id for c in campaigns])
    return [to_batch_status(c, submitted.get(c.id, 0)) for c in campaigns], total
