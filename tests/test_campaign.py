"""Campaign initiation: scope resolution, token issuance, dispatch job."""
import uuid
from datetime import datetime, timezone

import pytest

from phone_assets.core.exceptions import NotFound, ValidationError
from phone_assets.db.enums import CampaignScope, CampaignStatus, EmploymentStatus, JobType
from phone_assets.db.models import VerificationToken
from phone_assets.schemas.verification import CampaignCreate
from phone_assets.services import job_service, verification_campaign_service
from phone_assets.utils.datetime_utils import compute_token_expiry, ensure_utc


def test_one_token_per_employee(db, make_employee):
    employees = [make_employee() for _ in range(4)]

    campaign, job = verification_campaign_service.initiate_campaign(
        db,
        CampaignCreate(
            scope=CampaignScope.EMPLOYEE_IDS,
            scope_values=[e.employee_id for e in employees] + [employees[0].employee_id],
            duration_days=7,
        ),
    )

    tokens = db.query(VerificationToken).filter(VerificationToken.campaign_id == campaign.id).all()
    assert len(tokens) == 4
    assert {t.employee_id for t in tokens} == {e.id for e in employees}
    assert len({t.token for t in tokens}) == 4
    assert all(not t.consumed for t in tokens)
    assert campaign.total_employees_to_process == 4
    assert campaign.tokens_generated_count == 4
    assert campaign.emails_attempted_count == 0
    assert campaign.status == CampaignStatus.IN_PROGRESS.value

    assert job.job_type == JobType.VERIFICATION_DISPATCH.value
    assert job.payload == {"campaign_id": str(campaign.id)}
    assert job_service.find_job_by_key(db, verification_campaign_service.dispatch_job_key(campaign.id))


def test_all_users_scope_skips_departed(db, make_employee):
    make_employee()
    make_employee()
    make_employee(status=EmploymentStatus.DEPARTED)

    campaign, _ = verification_campaign_service.initiate_campaign(
        db, CampaignCreate(scope=CampaignScope.ALL_USERS, duration_days=3)
    )
    assert campaign.tokens_generated_count == 2


def test_department_scope_includes_subdepartments(db, make_department, make_employee):
    sales = make_department("Sales")
    north = make_department("North", parent=sales)
    other = make_department("Finance")
    make_employee(department=sales)
    make_employee(department=north)
    make_employee(department=north)
    make_employee(department=other)

    campaign, _ = verification_campaign_service.initiate_campaign(
        db,
        CampaignCreate(
            scope=CampaignScope.DEPARTMENT_IDS, scope_values=[str(sales.id)], duration_days=7
        ),
    )

    status = verification_campaign_service.get_batch_status(db, campaign.id)
    assert status.total_employees_to_process == 3
    assert status.tokens_generated_count == 3


def test_token_expiry_is_end_of_local_day(db, make_employee):
    employee = make_employee()
    campaign, _ = verification_campaign_service.initiate_campaign(
        db,
        CampaignCreate(
            scope=CampaignScope.EMPLOYEE_IDS, scope_values=[employee.employee_id], duration_days=5
        ),
    )
    token = db.query(VerificationToken).filter(VerificationToken.campaign_id == campaign.id).one()
    expected = compute_token_expiry(5)
    assert abs((ensure_utc(token.expires_at) - expected).total_seconds()) < 1


def test_compute_token_expiry_in_shanghai():
    # 2024-03-04 02:00 UTC is 10:00 in Shanghai
    now = datetime(2024, 3, 4, 2, 0, tzinfo=timezone.utc)
    expiry = compute_token_expiry(7, now=now, tz_name="Asia/Shanghai")
    # 2024-03-11 23:59:59 +08:00
    assert expiry == datetime(2024, 3, 11, 15, 59, 59, tzinfo=timezone.utc)


@pytest.mark.parametrize("duration", [0, -1, 366])
def test_duration_out_of_range(db, make_employee, duration):
    employee = make_employee()
    with pytest.raises(ValidationError):
        verification_campaign_service.initiate_campaign(
            db,
            CampaignCreate(
                scope=CampaignScope.EMPLOYEE_IDS,
                scope_values=[employee.employee_id],
                duration_days=duration,
            ),
        )


def test_scope_errors(db, make_employee):
    departed = make_employee(status=EmploymentStatus.DEPARTED)

    bad_requests = [
        CampaignCreate(scope=CampaignScope.EMPLOYEE_IDS, scope_values=[], duration_days=7),
        CampaignCreate(scope=CampaignScope.EMPLOYEE_IDS, scope_values=["NOPE"], duration_days=7),
        CampaignCreate(
            scope=CampaignScope.EMPLOYEE_IDS, scope_values=[departed.employee_id], duration_days=7
        ),
        CampaignCreate(scope=CampaignScope.DEPARTMENT_IDS, scope_values=["x"], duration_days=7),
        CampaignCreate(
            scope=CampaignScope.DEPARTMENT_IDS,
            scope_values=["00000000-0000-0000-0000-000000000000"],
            duration_days=7,
        ),
        # No active employees at all
        CampaignCreate(scope=CampaignScope.ALL_USERS, duration_days=7),
    ]
    for data in bad_requests:
        with pytest.raises(ValidationError):
            verification_campaign_service.initiate_campaign(db, data)

    assert db.query(VerificationToken).count() == 0
    _, total = verification_campaign_service.list_batches(db)
    assert total == 0


def test_get_missing_batch(db):
    with pytest.raises(NotFound):
        verification_campaign_service.get_batch_status(
            db, uuid.UUID("00000000-0000-0000-0000-000000000000")
        )


def test_terminal_status():
    assert verification_campaign_service.terminal_status(3, 0) == CampaignStatus.COMPLETED
    assert verification_campaign_service.terminal_status(3, 1) == CampaignStatus.COMPLETED_WITH_ERRORS
    assert verification_campaign_service.terminal_status(3, 3) == CampaignStatus.FAILED
    assert verification_campaign_service.terminal_status(0, 0) == CampaignStatus.COMPLETED


def test_list_batches(db, make_employee, start_campaign):
    employee = make_employee()
    start_campaign(employee)
    start_campaign(employee)

    items, total = verification_campaign_service.list_batches(db)
    assert total == 2
    assert all(item.tokens_generated_count == 1 for item in items)

    items, total = verification_campaign_service.list_batches(db, status="completed")
    assert total == 0
