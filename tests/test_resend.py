"""Resending failed verification emails with existing tokens."""
from datetime import timedelta

import pytest
from sqlalchemy import update

from phone_assets.core.exceptions import ValidationError
from phone_assets.db.enums import CampaignStatus
from phone_assets.db.models import VerificationToken
from phone_assets.services import verification_campaign_service, verification_dispatch_service
from phone_assets.utils.datetime_utils import utcnow


async def _dispatched_with_failure(db, make_employee, start_campaign, transport):
    ok = make_employee()
    bad = make_employee()
    transport.fail_for.add(bad.email)
    campaign = start_campaign(ok, bad)
    await verification_dispatch_service.dispatch_campaign(db, campaign.id, transport)
    return campaign, ok, bad


async def test_resend_targets_error_summary_and_completes(db, make_employee, start_campaign, transport):
    campaign, ok, bad = await _dispatched_with_failure(db, make_employee, start_campaign, transport)
    assert verification_campaign_service.get_batch_status(db, campaign.id).status == (
        CampaignStatus.COMPLETED_WITH_ERRORS.value
    )

    transport.fail_for.clear()
    transport.sent.clear()
    result = await verification_dispatch_service.resend(db, campaign.id, transport=transport)

    assert result.total_attempted == 1
    assert result.success_count == 1
    assert result.success_emails == [bad.email]
    assert [s["to"] for s in transport.sent] == [bad.email]

    status = verification_campaign_service.get_batch_status(db, campaign.id)
    assert status.status == CampaignStatus.COMPLETED.value
    assert status.error_summary == []
    assert status.resend_attempted_count == 1
    assert status.resend_succeeded_count == 1
    # Original dispatch counters are untouched
    assert status.emails_attempted_count == 2
    assert status.emails_failed_count == 1


async def test_resend_reuses_the_same_token(db, make_employee, start_campaign, transport):
    campaign, _, bad = await _dispatched_with_failure(db, make_employee, start_campaign, transport)
    first_html = next(s["html"] for s in transport.sent if s["to"] == bad.email)

    transport.fail_for.clear()
    await verification_dispatch_service.resend(db, campaign.id, transport=transport)

    resent_html = transport.sent[-1]["html"]
    assert resent_html == first_html
    assert db.query(VerificationToken).filter(VerificationToken.campaign_id == campaign.id).count() == 2


async def test_resend_still_failing_keeps_errors(db, make_employee, start_campaign, transport):
    campaign, _, bad = await _dispatched_with_failure(db, make_employee, start_campaign, transport)

    result = await verification_dispatch_service.resend(db, campaign.id, transport=transport)

    assert result.failed_count == 1
    status = verification_campaign_service.get_batch_status(db, campaign.id)
    assert status.status == CampaignStatus.COMPLETED_WITH_ERRORS.value
    assert [e.employee_id for e in status.error_summary] == [bad.employee_id]
    assert status.resend_attempted_count == 1
    assert status.resend_succeeded_count == 0


async def test_resend_to_named_employee(db, make_employee, start_campaign, transport):
    campaign, ok, _ = await _dispatched_with_failure(db, make_employee, start_campaign, transport)
    transport.sent.clear()

    result = await verification_dispatch_service.resend(
        db, campaign.id, [ok.employee_id], transport=transport
    )

    assert result.total_attempted == 1
    assert [s["to"] for s in transport.sent] == [ok.email]


async def test_resend_rejects_unknown_or_outside_employees(db, make_employee, start_campaign, transport):
    campaign, _, _ = await _dispatched_with_failure(db, make_employee, start_campaign, transport)
    outsider = make_employee()

    with pytest.raises(ValidationError):
        await verification_dispatch_service.resend(db, campaign.id, ["NOPE"], transport=transport)
    with pytest.raises(ValidationError):
        await verification_dispatch_service.resend(
            db, campaign.id, [outsider.employee_id], transport=transport
        )


async def test_resend_rejects_expired_tokens(db, make_employee, start_campaign, transport):
    campaign, _, bad = await _dispatched_with_failure(db, make_employee, start_campaign, transport)
    db.execute(
        update(VerificationToken)
        .where(VerificationToken.campaign_id == campaign.id)
        .values(expires_at=utcnow() - timedelta(days=1))
    )
    db.commit()
    transport.sent.clear()

    with pytest.raises(ValidationError):
        await verification_dispatch_service.resend(db, campaign.id, transport=transport)
    assert transport.sent == []


async def test_resend_rejected_while_dispatching(db, make_employee, start_campaign, transport):
    campaign = start_campaign(make_employee())

    with pytest.raises(ValidationError):
        await verification_dispatch_service.resend(db, campaign.id, transport=transport)


async def test_resend_skips_employees_who_already_submitted(db, make_employee, start_campaign, transport):
    campaign, _, bad = await _dispatched_with_failure(db, make_employee, start_campaign, transport)
    db.execute(
        update(VerificationToken)
        .where(VerificationToken.campaign_id == campaign.id, VerificationToken.employee_id == bad.id)
        .values(consumed=True, consumed_at=utcnow())
    )
    db.commit()
    transport.sent.clear()

    result = await verification_dispatch_service.resend(db, campaign.id, transport=transport)

    assert result.total_attempted == 0
    assert transport.sent == []
    status = verification_campaign_service.get_batch_status(db, campaign.id)
    assert status.error_summary == []
    assert status.status == CampaignStatus.COMPLETED.value
