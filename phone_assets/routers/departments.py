"""Departments router - tree listing and selection resolution."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from phone_assets.core.deps import get_db
from phone_assets.schemas.employee import (
    DepartmentRead,
    DepartmentSelectionRequest,
    DepartmentSelectionResponse,
)
from phone_assets.services import directory_service

router = APIRouter()


@router.get("", response_model=list[DepartmentRead])
def list_departments(db: Session = Depends(get_db)):
    return directory_service.list_departments(db)


@router.post("/selection", response_model=DepartmentSelectionResponse)
def resolve_selection(data: DepartmentSelectionRequest, db: Session = Depends(get_db)):
    """Effective and indeterminate department ids for a set of checked nodes."""
    selection = directory_service.resolve_department_selection(db, data.department_ids)
    return DepartmentSelectionResponse(
        effective_ids=sorted(selection.effective, key=str),
        indeterminate_ids=sorted(selection.indeterminate, key=str),
    )
