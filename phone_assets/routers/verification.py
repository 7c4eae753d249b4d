"""Verification campaign router.

Admin endpoints start campaigns, poll their status, resend failed emails and
read results. The token endpoints are public: the token in the query string is
the only credential, so they are rate limited per client address.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from phone_assets.core.deps import get_db
from phone_assets.core.rate_limit import PUBLIC_LIMIT, limiter
from phone_assets.db.enums import CampaignStatus
from phone_assets.schemas.verification import (
    BatchListResponse,
    BatchStatus,
    CampaignCreate,
    CampaignCreated,
    EmployeeInfo,
    ResendRequest,
    ResendResult,
    SubmissionRequest,
    SubmissionResult,
    VerificationResults,
)
from phone_assets.services import (
    verification_campaign_service,
    verification_dispatch_service,
    verification_results_service,
    verification_submission_service,
)

router = APIRouter()


# =============================================================================
# Admin
# =============================================================================

@router.post("/admin/batch", response_model=CampaignCreated, status_code=202)
def create_batch(data: CampaignCreate, db: Session = Depends(get_db)):
    """
    Start a verification campaign.

    Tokens are issued synchronously; emails go out from the worker.
    Poll /batch/{id}/status for progress.
    """
    campaign, job = verification_campaign_service.initiate_campaign(db, data)
    return CampaignCreated(batch_id=campaign.id, job_id=job.id)


@router.get("/admin/batches", response_model=BatchListResponse)
def list_batches(
    db: Session = Depends(get_db),
    status: CampaignStatus | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    items, total = verification_campaign_service.list_batches(
        db, status=status.value if status else None, limit=limit, offset=offset
    )
    return BatchListResponse(items=items, total=total)


@router.get("/batch/{batch_id}/status", response_model=BatchStatus)
def get_batch_status(batch_id: UUID, db: Session = Depends(get_db)):
    return verification_campaign_service.get_batch_status(db, batch_id)


@router.post("/batch/{batch_id}/resend", response_model=ResendResult)
async def resend_batch(
    batch_id: UUID,
    data: ResendRequest | None = None,
    db: Session = Depends(get_db),
):
    """Re-send with existing tokens to the listed employees, or to everyone in errorSummary."""
    employee_ids = data.employee_ids if data else None
    return await verification_dispatch_service.resend(db, batch_id, employee_ids)


@router.get("/admin/phone-status", response_model=VerificationResults)
def get_results(
    batch_id: UUID,
    employee_id: str | None = None,
    department_id: UUID | None = None,
    db: Session = Depends(get_db),
):
    return verification_results_service.get_results(
        db, batch_id, employee_code=employee_id, department_id=department_id
    )


# =============================================================================
# Public (token)
# =============================================================================

@router.get("/info", response_model=EmployeeInfo)
@limiter.limit(PUBLIC_LIMIT)
def get_info(request: Request, token: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Employee and phones behind a verification link."""
    return verification_submission_service.get_employee_info(db, token)


@router.post("/submit", response_model=SubmissionResult)
@limiter.limit(PUBLIC_LIMIT)
def submit(
    request: Request,
    data: SubmissionRequest,
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    return verification_submission_service.submit_verification(db, token, data)
