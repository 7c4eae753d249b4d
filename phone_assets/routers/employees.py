"""Employee directory router."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from phone_assets.core.deps import get_db
from phone_assets.db.enums import EmploymentStatus
from phone_assets.schemas.employee import (
    EmployeeCreate,
    EmployeeListResponse,
    EmployeeRead,
    EmploymentStatusResult,
    EmploymentStatusUpdate,
)
from phone_assets.services import directory_service

router = APIRouter()


@router.get("", response_model=EmployeeListResponse)
def list_employees(
    db: Session = Depends(get_db),
    q: str | None = Query(None, description="Search name, employee id or email"),
    department_id: UUID | None = None,
    employment_status: EmploymentStatus | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    employees, total = directory_service.list_employees(
        db,
        search=q,
        department_id=department_id,
        employment_status=employment_status.value if employment_status else None,
        limit=limit,
        offset=offset,
    )
    return EmployeeListResponse(
        items=[EmployeeRead.model_validate(e) for e in employees], total=total
    )


@router.get("/{employee_id}", response_model=EmployeeRead)
def get_employee(employee_id: str, db: Session = Depends(get_db)):
    return directory_service.get_employee(db, employee_id)


@router.post("", response_model=EmployeeRead, status_code=201)
def create_employee(data: EmployeeCreate, db: Session = Depends(get_db)):
    return directory_service.create_employee(
        db,
        employee_code=data.employee_id,
        full_name=data.full_name,
        email=data.email,
        department_id=data.department_id,
        hire_date=data.hire_date,
    )


@router.patch("/{employee_id}/employment-status", response_model=EmploymentStatusResult)
def update_employment_status(
    employee_id: str,
    data: EmploymentStatusUpdate,
    db: Session = Depends(get_db),
):
    """
    Change employment status.

    Active -> Departed flags every phone the employee registered for risk review.
    """
    employee, flagged = directory_service.change_employment_status(
        db, employee_id, data.employment_status, data.termination_date
    )
    return EmploymentStatusResult(
        employee=EmployeeRead.model_validate(employee), flagged_phones=flagged
    )
