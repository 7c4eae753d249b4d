"""Employee and department directory lookups."""
import logging
from datetime import date
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from phone_assets.core.exceptions import NotFound, PersistenceConflict, ValidationError
from phone_assets.db.enums import EmploymentStatus
from phone_assets.db.models import Department, Employee
from phone_assets.utils import department_tree
from phone_assets.utils.department_tree import DepartmentTree, Selection
from phone_assets.utils.datetime_utils import local_today

logger = logging.getLogger(__name__)


# =============================================================================
# Employees
# =============================================================================

def find_employee(db: Session, employee_code: str) -> Employee | None:
    return db.query(Employee).filter(Employee.employee_id == employee_code).first()


def get_employee(db: Session, employee_code: str) -> Employee:
    employee = find_employee(db, employee_code)
    if not employee:
        raise NotFound(f"Employee {employee_code} not found")
    return employee


def get_active_employee(db: Session, employee_code: str) -> Employee:
    """Employee that can hold or register a phone."""
    employee = find_employee(db, employee_code)
    if not employee:
        raise ValidationError(f"Employee {employee_code} not found")
    if not employee.is_active:
        raise ValidationError(f"Employee {employee_code} has departed")
    return employee


def list_employees(
    db: Session,
    search: str | None = None,
    department_id: UUID | None = None,
    employment_status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Employee], int]:
    query = db.query(Employee)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Employee.full_name.ilike(pattern),
                Employee.employee_id.ilike(pattern),
                Employee.email.ilike(pattern),
            )
        )
    if department_id:
        query = query.filter(Employee.department_id == department_id)
    if employment_status:
        query = query.filter(Employee.employment_status == employment_status)

    total = query.count()
    employees = query.order_by(Employee.employee_id).offset(offset).limit(limit).all()
    return employees, total


def create_employee(
    db: Session,
    *,
    employee_code: str,
    full_name: str,
    email: str | None = None,
    department_id: UUID | None = None,
    hire_date: date | None = None,
) -> Employee:
    if find_employee(db, employee_code):
        raise ValidationError(f"Employee {employee_code} already exists")
    if department_id and not db.get(Department, department_id):
        raise ValidationError(f"Department {department_id} not found")

    employee = Employee(
        employee_id=employee_code,
        full_name=full_name,
        email=email,
        department_id=department_id,
        hire_date=hire_date,
        employment_status=EmploymentStatus.ACTIVE.value,
    )
    db.add(employee)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise PersistenceConflict(f"Employee {employee_code} already exists")
    db.refresh(employee)
    return employee


def set_employment_status(
    db: Session,
    employee: Employee,
    status: EmploymentStatus,
    termination_date: date | None = None,
) -> str:
    """
    Update employment status without committing.

    Returns the previous status so callers can react to Active -> Departed.
    """
    previous = employee.employment_status
    employee.employment_status = status.value
    if status == EmploymentStatus.DEPARTED:
        if termination_date or previous != EmploymentStatus.DEPARTED.value:
            employee.termination_date = termination_date or local_today()
    else:
        employee.termination_date = None
    return previous


# =============================================================================
# Departments
# =============================================================================

def list_departments(db: Session) -> list[Department]:
    return db.query(Department).order_by(Department.name).all()


def load_department_tree(db: Session) -> DepartmentTree:
    rows = db.query(Department.id, Department.parent_id).all()
    return department_tree.build_tree((row.id, row.parent_id) for row in rows)


def resolve_department_selection(db: Session, department_ids: list[UUID]) -> Selection:
    tree = load_department_tree(db)
    unknown = [d for d in department_ids if d not in tree]
    if unknown:
        raise ValidationError(f"Unknown departments: {', '.join(str(d) for d in unknown)}")
    return department_tree.resolve_selection(tree, department_ids)


def employees_in_departments(db: Session, department_ids: list[UUID]) -> list[Employee]:
    """Active employees in the given departments or any department below them."""
    tree = load_department_tree(db)
    unknown = [d for d in department_ids if d not in tree]
    if unknown:
        raise ValidationError(f"Unknown departments: {', '.join(str(d) for d in unknown)}")
    scope = department_tree.expand_selection(tree, department_ids)
    if not scope:
        return []
    return (
        db.query(Employee)
        .filter(
            Employee.department_id.in_(list(scope)),
            Employee.employment_status == EmploymentStatus.ACTIVE.value,
        )
        .order_by(Employee.employee_id)
        .all()
    )


def change_employment_status(
    db: Session,
    employee_code: str,
    status: EmploymentStatus,
    termination_date: date | None = None,
) -> tuple[Employee, int]:
    """
    Change an employee's employment status and commit.

    Any update to Departed runs risk detection on the employee's registered
    phones; phones already flagged are skipped, so a retried call picks up
    what an earlier failed detection missed. Returns the employee and the
    number of phones flagged.
    """
    from phone_assets.services import risk_service

    employee = get_employee(db, employee_code)
    previous = set_employment_status(db, employee, status, termination_date)
    db.commit()
    db.refresh(employee)

    flagged = 0
    if status == EmploymentStatus.DEPARTED:
        flagged = len(risk_service.detect_departed_registrant(db, employee))
        db.refresh(employee)
    logger.info(
        "Employee %s status %s -> %s, flagged %d phone(s)",
        employee.employee_id,
        previous,
        status.value,
        flagged,
    )
    return employee, flagged
