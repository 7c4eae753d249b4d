"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema rebuilt for every test
- HTTPX AsyncClient bound to the app with the test session
- Factories for departments, employees and phones
- A fake email transport with scriptable failures
"""
import os
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import AsyncGenerator, Generator

# Must be set before the app modules read settings
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TESTING"] = "1"
os.environ["RESEND_API_KEY"] = ""
os.environ["ENV"] = "test"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from phone_assets.core.deps import get_db
from phone_assets.db.base import Base
from phone_assets.db.enums import CampaignScope, EmploymentStatus, PhoneStatus
from phone_assets.db.models import (
    Department,
    Employee,
    PhoneNumber,
    PhoneUsageHistory,
    VerificationCampaign,
)
from phone_assets.db.session import SessionLocal, engine
from phone_assets.main import app
from phone_assets.schemas.verification import CampaignCreate
from phone_assets.services import verification_campaign_service
from phone_assets.services.email_transport import SendResult


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; app code commits freely."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Factories
# =============================================================================

def _code() -> str:
    return f"E{uuid.uuid4().hex[:6].upper()}"


_number_seq = iter(range(10_000_000))


def next_number() -> str:
    """Unique, valid mainland mobile number."""
    return f"138{next(_number_seq):08d}"


@pytest.fixture
def make_department(db: Session):
    def _make(name: str = "Department", parent: Department | None = None) -> Department:
        department = Department(name=name, parent_id=parent.id if parent else None)
        db.add(department)
        db.commit()
        db.refresh(department)
        return department

    return _make


@pytest.fixture
def make_employee(db: Session):
    def _make(
        full_name: str = "Test Employee",
        department: Department | None = None,
        email: str | None = None,
        without_email: bool = False,
        status: EmploymentStatus = EmploymentStatus.ACTIVE,
        employee_code: str | None = None,
    ) -> Employee:
        code = employee_code or _code()
        employee = Employee(
            employee_id=code,
            full_name=full_name,
            email=None if without_email else (email or f"{code.lower()}@example.com"),
            department_id=department.id if department else None,
            employment_status=status.value,
            hire_date=date(2022, 1, 1),
        )
        db.add(employee)
        db.commit()
        db.refresh(employee)
        return employee

    return _make


@pytest.fixture
def make_phone(db: Session):
    def _make(
        registrant: Employee,
        status: PhoneStatus = PhoneStatus.IDLE,
        current_user: Employee | None = None,
        number: str | None = None,
        purpose: str | None = None,
    ) -> PhoneNumber:
        phone = PhoneNumber(
            number=number or next_number(),
            status=status.value,
            registrant_id=registrant.id,
            current_user_id=current_user.id if current_user else None,
            department_id=registrant.department_id,
            purpose=purpose,
        )
        db.add(phone)
        db.flush()
        if current_user is not None:
            db.add(
                PhoneUsageHistory(
                    phone_id=phone.id, employee_id=current_user.id, start_date=date(2023, 1, 1)
                )
            )
        db.commit()
        db.refresh(phone)
        return phone

    return _make


@pytest.fixture
def start_campaign(db: Session):
    """Initiate an employee-scoped campaign and return its row."""

    def _start(*employees: Employee, duration_days: int = 7) -> VerificationCampaign:
        campaign, _job = verification_campaign_service.initiate_campaign(
            db,
            CampaignCreate(
                scope=CampaignScope.EMPLOYEE_IDS,
                scope_values=[e.employee_id for e in employees],
                duration_days=duration_days,
                created_by="admin",
            ),
        )
        return campaign

    return _start


# =============================================================================
# Email
# =============================================================================

@dataclass
class FakeTransport:
    """Records sends; addresses in fail_for get a provider error."""

    fail_for: set[str] = field(default_factory=set)
    sent: list[dict] = field(default_factory=list)

    async def send(self, to_email, subject, html, idempotency_key=None) -> SendResult:
        self.sent.append(
            {"to": to_email, "subject": subject, "html": html, "idempotency_key": idempotency_key}
        )
        if to_email in self.fail_for:
            return SendResult(ok=False, error="Resend API error: 422 (invalid recipient)")
        return SendResult(ok=True, message_id=f"msg-{len(self.sent)}")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
