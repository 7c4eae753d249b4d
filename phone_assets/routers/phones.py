"""Phone numbers router - registry CRUD, assignment and risk handling."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from phone_assets.core.deps import get_db
from phone_assets.db.enums import EmploymentStatus, PhoneStatus
from phone_assets.schemas.phone import (
    HandleRiskRequest,
    PhoneAssign,
    PhoneCreate,
    PhoneDetail,
    PhoneListResponse,
    PhoneRead,
    PhoneUnassign,
    PhoneUpdate,
    RiskCaseRead,
    RiskPhoneRead,
    UsageHistoryRead,
)
from phone_assets.services import phone_service

router = APIRouter()


def _history_read(entries) -> list[UsageHistoryRead]:
    return [
        UsageHistoryRead(
            id=h.id,
            employee_id=h.employee_id,
            employee_name=h.employee.full_name if h.employee else None,
            start_date=h.start_date,
            end_date=h.end_date,
        )
        for h in entries
    ]


@router.post("", response_model=PhoneRead, status_code=201)
def create_phone(data: PhoneCreate, db: Session = Depends(get_db)):
    """Register a number. Only idle and in_use are accepted as initial status."""
    return phone_service.create_phone(db, data)


@router.get("", response_model=PhoneListResponse)
def list_phones(
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    status: PhoneStatus | None = None,
    q: str | None = Query(None, description="Search number, purpose, registrant or user"),
    registrant_status: EmploymentStatus | None = None,
    pending_review: bool | None = None,
):
    phones, total = phone_service.list_phones(
        db,
        status=status.value if status else None,
        search=q,
        registrant_status=registrant_status.value if registrant_status else None,
        pending_review=pending_review,
        page=page,
        per_page=per_page,
    )
    return PhoneListResponse(
        items=[PhoneRead.model_validate(p) for p in phones],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/risk", response_model=list[RiskPhoneRead])
def list_risk_phones(db: Session = Depends(get_db)):
    """Phones in risk_pending or user_reported with their open risk cases."""
    items = []
    for phone, cases in phone_service.list_risk_phones(db):
        item = RiskPhoneRead.model_validate(phone)
        item.open_risk_cases = [RiskCaseRead.model_validate(c) for c in cases]
        items.append(item)
    return items


@router.get("/{phone_id}", response_model=PhoneDetail)
def get_phone(phone_id: UUID, db: Session = Depends(get_db)):
    phone = phone_service.get_phone(db, phone_id)
    detail = PhoneDetail.model_validate(phone)
    detail.usage_history = _history_read(phone_service.get_usage_history(db, phone_id))
    return detail


@router.get("/{phone_id}/history", response_model=list[UsageHistoryRead])
def get_usage_history(phone_id: UUID, db: Session = Depends(get_db)):
    return _history_read(phone_service.get_usage_history(db, phone_id))


@router.put("/{phone_id}", response_model=PhoneRead)
def update_phone(phone_id: UUID, data: PhoneUpdate, db: Session = Depends(get_db)):
    """Apply a partial update; a status change must be a legal transition."""
    return phone_service.update_phone(db, phone_id, data)


@router.delete("/{phone_id}", status_code=204)
def delete_phone(phone_id: UUID, db: Session = Depends(get_db)):
    phone_service.delete_phone(db, phone_id)
    return Response(status_code=204)


@router.post("/{phone_id}/assign", response_model=PhoneRead)
def assign_phone(phone_id: UUID, data: PhoneAssign, db: Session = Depends(get_db)):
    return phone_service.assign_phone(db, phone_id, data)


@router.post("/{phone_id}/unassign", response_model=PhoneRead)
def unassign_phone(
    phone_id: UUID,
    data: PhoneUnassign | None = None,
    db: Session = Depends(get_db),
):
    return phone_service.unassign_phone(db, phone_id, data.reclaim_date if data else None)


@router.post("/{phone_id}/handle-risk", response_model=PhoneRead)
def handle_risk(phone_id: UUID, data: HandleRiskRequest, db: Session = Depends(get_db)):
    """
    Resolve a risk_pending or user_reported phone.

    - change_applicant: new Active registrant, status before the flag restored
    - reclaim: back to idle, current user cleared
    - deactivate: closed with a cancellation date
    """
    return phone_service.handle_risk(db, phone_id, data)
