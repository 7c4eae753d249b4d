"""Verification email dispatch and resend.

Each recipient is sent independently under a concurrency cap; one
recipient's failure is recorded in the campaign's errorSummary and never
stops the others. Every outcome is applied with a single UPDATE and
committed right away, so status reads never see torn or regressing counters.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from phone_assets.core.config import settings
from phone_assets.core.exceptions import DispatchFailure, ValidationError
from phone_assets.db.enums import CampaignStatus
from phone_assets.db.models import Employee, VerificationCampaign, VerificationToken
from phone_assets.schemas.verification import ResendResult
from phone_assets.services import directory_service, verification_campaign_service
from phone_assets.services.email_transport import EmailTransport, SendResult, get_email_transport
from phone_assets.utils.datetime_utils import ensure_utc, is_expired, utcnow
from phone_assets.utils.masking import mask_email

logger = logging.getLogger(__name__)

SUBJECT_TEMPLATE = "Please confirm the company phone numbers you use"
BODY_TEMPLATE = """\
<p>Hello {{full_name}},</p>
<p>As part of the periodic phone-asset review, please confirm which company
phone numbers you currently use and report any number that is listed under
your name but no longer in use.</p>
<p><a href="{{verification_url}}">Review my phone numbers</a></p>
<p>This link is personal and expires on {{expires_at}}.</p>
"""

DISPATCH_ACTIVE_STATUSES = frozenset({CampaignStatus.PENDING, CampaignStatus.IN_PROGRESS})


@dataclass(frozen=True)
class Recipient:
    """Plain snapshot of what a send needs, detached from the session."""

    token_id: UUID
    token: str
    employee_code: str
    employee_name: str
    email: str | None
    expires_at: datetime


@dataclass
class DispatchOutcome:
    campaign_id: UUID
    status: CampaignStatus
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    fatal_error: str | None = None
    results: dict[str, SendResult] = field(default_factory=dict)


# =============================================================================
# Message composition
# =============================================================================

def render_template(template: str, context: dict[str, str]) -> str:
    rendered = template
    for key, value in context.items():
        rendered = rendered.replace("{{" + key + "}}", value)
    return rendered


def build_verification_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/verification/{token}"


def format_expiry(expires_at: datetime) -> str:
    local = ensure_utc(expires_at).astimezone(ZoneInfo(settings.VERIFICATION_TIMEZONE))
    return local.strftime("%Y-%m-%d %H:%M")


def compose_message(recipient: Recipient) -> tuple[str, str]:
    context = {
        "full_name": recipient.employee_name,
        "verification_url": build_verification_url(recipient.token),
        "expires_at": format_expiry(recipient.expires_at),
    }
    return render_template(SUBJECT_TEMPLATE, context), render_template(BODY_TEMPLATE, context)


def _error_entry(recipient: Recipient | None, reason: str) -> dict:
    return {
        "employeeId": recipient.employee_code if recipient else None,
        "employeeName": recipient.employee_name if recipient else None,
        "emailAddress": recipient.email if recipient else None,
        "reason": reason,
    }


# =============================================================================
# Outcome recording
# =============================================================================

def _record_success(db: Session, campaign_id: UUID, recipient: Recipient) -> None:
    now = utcnow()
    db.execute(
        update(VerificationCampaign)
        .where(VerificationCampaign.id == campaign_id)
        .values(
            emails_attempted_count=VerificationCampaign.emails_attempted_count + 1,
            emails_succeeded_count=VerificationCampaign.emails_succeeded_count + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(VerificationToken)
        .where(VerificationToken.id == recipient.token_id)
        .values(last_sent_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def _lock_campaign(db: Session, campaign_id: UUID) -> VerificationCampaign:
    return (
        db.query(VerificationCampaign)
        .filter(VerificationCampaign.id == campaign_id)
        .populate_existing()
        .with_for_update()
        .one()
    )


def _record_failure(db: Session, campaign_id: UUID, recipient: Recipient, reason: str) -> None:
    campaign = _lock_campaign(db, campaign_id)
    db.execute(
        update(VerificationCampaign)
        .where(VerificationCampaign.id == campaign_id)
        .values(
            emails_attempted_count=VerificationCampaign.emails_attempted_count + 1,
            emails_failed_count=VerificationCampaign.emails_failed_count + 1,
        )
        .execution_options(synchronize_session=False)
    )
    campaign.error_summary = [*(campaign.error_summary or []), _error_entry(recipient, reason)]
    db.commit()


def _mark_fatal(db: Session, campaign_id: UUID, reason: str) -> None:
    db.rollback()
    campaign = _lock_campaign(db, campaign_id)
    campaign.status = CampaignStatus.FAILED.value
    campaign.completed_at = utcnow()
    campaign.error_summary = [*(campaign.error_summary or []), _error_entry(None, reason)]
    db.commit()


# =============================================================================
# Sending
# =============================================================================

def _load_recipients(db: Session, tokens: list[VerificationToken]) -> list[Recipient]:
    return [
        Recipient(
            token_id=t.id,
            token=t.token,
            employee_code=t.employee.employee_id,
            employee_name=t.employee.full_name,
            email=t.employee.email,
            expires_at=ensure_utc(t.expires_at),
        )
        for t in tokens
    ]


async def _deliver(transport: EmailTransport, recipient: Recipient, timeout: float) -> SendResult:
    if not recipient.email:
        raise DispatchFailure("No email address on file")
    subject, html = compose_message(recipient)
    try:
        result = await asyncio.wait_for(
            transport.send(
                recipient.email,
                subject,
                html,
                idempotency_key=f"verification-token/{recipient.token_id}",
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        raise DispatchFailure("Send timed out")
    except DispatchFailure:
        raise
    except Exception as e:
        raise DispatchFailure(f"{e.__class__.__name__}: {e}")
    if not result.ok:
        raise DispatchFailure(result.error or "Send failed")
    return result


async def _send_all(
    recipients: list[Recipient],
    transport: EmailTransport,
    on_success,
    on_failure,
) -> dict[str, SendResult]:
    """Send to every recipient under the concurrency cap. Storage errors propagate."""
    semaphore = asyncio.Semaphore(max(1, settings.VERIFICATION_EMAIL_CONCURRENCY))
    timeout = settings.EMAIL_SEND_TIMEOUT_SECONDS * 3
    results: dict[str, SendResult] = {}

    async def send_one(recipient: Recipient) -> None:
        async with semaphore:
            try:
                result = await _deliver(transport, recipient, timeout)
            except DispatchFailure as e:
                logger.warning(
                    "Verification email failed employee=%s email=%s: %s",
                    recipient.employee_code,
                    mask_email(recipient.email),
                    e.message,
                )
                results[recipient.employee_code] = SendResult(ok=False, error=e.message)
                on_failure(recipient, e.message)
                return
        results[recipient.employee_code] = result
        on_success(recipient)

    outcomes = await asyncio.gather(
        *(send_one(r) for r in recipients), return_exceptions=True
    )
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return results


async def dispatch_campaign(
    db: Session,
    campaign_id: UUID,
    transport: EmailTransport | None = None,
) -> DispatchOutcome:
    """
    Send the verification email for every token of a campaign not yet attempted.

    Ends with the campaign in a terminal status. A storage failure marks the
    campaign failed with a root-cause errorSummary entry.
    """
    transport = transport or get_email_transport()
    campaign = verification_campaign_service.get_campaign(db, campaign_id)
    if CampaignStatus(campaign.status) not in DISPATCH_ACTIVE_STATUSES:
        logger.info("Campaign %s already %s, skipping dispatch", campaign_id, campaign.status)
        return DispatchOutcome(
            campaign_id=campaign_id,
            status=CampaignStatus(campaign.status),
            attempted=campaign.emails_attempted_count,
            succeeded=campaign.emails_succeeded_count,
            failed=campaign.emails_failed_count,
        )

    try:
        already_failed = {
            entry.get("employeeId") for entry in (campaign.error_summary or [])
        }
        tokens = (
            db.query(VerificationToken)
            .options(joinedload(VerificationToken.employee))
            .filter(
                VerificationToken.campaign_id == campaign_id,
                VerificationToken.last_sent_at.is_(None),
            )
            .order_by(VerificationToken.created_at)
            .all()
        )
        recipients = [
            r for r in _load_recipients(db, tokens) if r.employee_code not in already_failed
        ]
        db.commit()

        logger.info("Dispatching campaign %s to %d recipient(s)", campaign_id, len(recipients))
        results = await _send_all(
            recipients,
            transport,
            on_success=lambda r: _record_success(db, campaign_id, r),
            on_failure=lambda r, reason: _record_failure(db, campaign_id, r, reason),
        )

        campaign = _lock_campaign(db, campaign_id)
        status = verification_campaign_service.terminal_status(
            campaign.emails_attempted_count, campaign.emails_failed_count
        )
        campaign.status = status.value
        campaign.completed_at = utcnow()
        db.commit()
    except SQLAlchemyError as e:
        logger.exception("Dispatch of campaign %s aborted by storage error", campaign_id)
        reason = f"Dispatch aborted: {e.__class__.__name__}"
        _mark_fatal(db, campaign_id, reason)
        campaign = verification_campaign_service.get_campaign(db, campaign_id)
        return DispatchOutcome(
            campaign_id=campaign_id,
            status=CampaignStatus.FAILED,
            attempted=campaign.emails_attempted_count,
            succeeded=campaign.emails_succeeded_count,
            failed=campaign.emails_failed_count,
            fatal_error=reason,
        )

    logger.info(
        "Campaign %s dispatch finished status=%s attempted=%d succeeded=%d failed=%d",
        campaign_id,
        status.value,
        campaign.emails_attempted_count,
        campaign.emails_succeeded_count,
        campaign.emails_failed_count,
    )
    return DispatchOutcome(
        campaign_id=campaign_id,
        status=status,
        attempted=campaign.emails_attempted_count,
        succeeded=campaign.emails_succeeded_count,
        failed=campaign.emails_failed_count,
        results=results,
    )


# =============================================================================
# Resend
# =============================================================================

def _resend_targets(
    db: Session, campaign: VerificationCampaign, employee_codes: list[str] | None
) -> list[VerificationToken]:
    tokens_query = (
        db.query(VerificationToken)
        .join(Employee, VerificationToken.employee_id == Employee.id)
        .options(joinedload(VerificationToken.employee))
        .filter(VerificationToken.campaign_id == campaign.id)
    )

    if employee_codes:
        codes = list(dict.fromkeys(c.strip() for c in employee_codes if c and c.strip()))
        unknown = [c for c in codes if directory_service.find_employee(db, c) is None]
        if unknown:
            raise ValidationError(f"Unknown employees: {', '.join(unknown)}")
        tokens = tokens_query.filter(Employee.employee_id.in_(codes)).all()
        in_campaign = {t.employee.employee_id for t in tokens}
        outside = [c for c in codes if c not in in_campaign]
        if outside:
            raise ValidationError(f"Employees are not part of this batch: {', '.join(outside)}")
        return tokens

    failed_codes = {
        entry.get("employeeId")
        for entry in (campaign.error_summary or [])
        if entry.get("employeeId")
    }
    tokens = tokens_query.all()
    # Failed sends plus anything a fatal error left unsent
    return [
        t
        for t in tokens
        if t.employee.employee_id in failed_codes or (t.last_sent_at is None and not t.consumed)
    ]


def _apply_resend_outcome(
    db: Session, campaign_id: UUID, recipient: Recipient, error: str | None
) -> None:
    campaign = _lock_campaign(db, campaign_id)
    values = {"resend_attempted_count": VerificationCampaign.resend_attempted_count + 1}
    if error is None:
        values["resend_succeeded_count"] = VerificationCampaign.resend_succeeded_count + 1
    db.execute(
        update(VerificationCampaign)
        .where(VerificationCampaign.id == campaign_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    summary = [
        e for e in (campaign.error_summary or []) if e.get("employeeId") != recipient.employee_code
    ]
    if error is None:
        db.execute(
            update(VerificationToken)
            .where(VerificationToken.id == recipient.token_id)
            .values(last_sent_at=utcnow())
            .execution_options(synchronize_session=False)
        )
    else:
        summary.append(_error_entry(recipient, error))
    campaign.error_summary = summary
    db.commit()


async def resend(
    db: Session,
    campaign_id: UUID,
    employee_codes: list[str] | None = None,
    transport: EmailTransport | None = None,
) -> ResendResult:
    """
    Re-send verification emails with the campaign's existing tokens.

    Targets are the given employees, or everyone in errorSummary. Tokens are
    never regenerated, so an expired target rejects the whole request.
    Original dispatch counters are left as they are; resend traffic is
    counted separately and status is recomputed from what is still failing.
    """
    transport = transport or get_email_transport()
    campaign = verification_campaign_service.get_campaign(db, campaign_id)
    if CampaignStatus(campaign.status) in DISPATCH_ACTIVE_STATUSES:
        raise ValidationError("Batch is still being dispatched; try again when it has finished")

    tokens = _resend_targets(db, campaign, employee_codes)

    now = utcnow()
    expired = [t.employee.employee_id for t in tokens if not t.consumed and is_expired(t.expires_at, now=now)]
    if expired:
        raise ValidationError(
            f"Verification links have expired for: {', '.join(expired)}; start a new batch instead"
        )

    consumed_codes = {t.employee.employee_id for t in tokens if t.consumed}
    recipients = _load_recipients(db, [t for t in tokens if not t.consumed])

    # Already submitted, nothing left to chase
    campaign.error_summary = [
        e
        for e in (campaign.error_summary or [])
        if e.get("employeeId") is not None and e.get("employeeId") not in consumed_codes
    ]
    db.commit()

    results = await _send_all(
        recipients,
        transport,
        on_success=lambda r: _apply_resend_outcome(db, campaign_id, r, None),
        on_failure=lambda r, reason: _apply_resend_outcome(db, campaign_id, r, reason),
    )

    campaign = _lock_campaign(db, campaign_id)
    still_failing = {e.get("employeeId") for e in (campaign.error_summary or [])}
    if not still_failing:
        status = CampaignStatus.COMPLETED
    elif len(still_failing) >= campaign.tokens_generated_count:
        status = CampaignStatus.FAILED
    else:
        status = CampaignStatus.COMPLETED_WITH_ERRORS
    campaign.status = status.value
    campaign.completed_at = utcnow()
    db.commit()

    success = [r for r in recipients if results.get(r.employee_code) and results[r.employee_code].ok]
    failed = [r for r in recipients if r not in success]
    logger.info(
        "Resend for campaign %s: attempted=%d succeeded=%d skipped_submitted=%d status=%s",
        campaign_id,
        len(recipients),
        len(success),
        len(consumed_codes),
        status.value,
    )
    return ResendResult(
        total_attempted=len(recipients),
        success_count=len(success),
        failed_count=len(failed),
        success_emails=[r.email or r.employee_code for r in success],
        failed_emails=[r.email or r.employee_code for r in failed],
    )
