"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from phone_assets.db.base import Base
from phone_assets.db.enums import PhoneStatus
from phone_assets.db.models.directory import Department, Employee


class PhoneNumber(Base):
    """
    Company-owned phone number (SIM) and its lifecycle state.

    Status changes go through services.phone_status_service, which enforces
    the transition table. row_version is an optimistic lock: concurrent
    writers of the same row get StaleDataError on flush.
    """

    __tablename__ = "phone_numbers"
    __table_args__ = (
        Index("idx_phone_numbers_status", "status"),
        Index("idx_phone_numbers_registrant", "registrant_id"),
        Index("idx_phone_numbers_current_user", "current_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    status: Mapped[str] = mapped_column(
        String(40), default=PhoneStatus.IDLE.value, nullable=False
    )
    # Status held before entering risk_pending / user_reported, restored on change_applicant
    status_before_risk: Mapped[str | None] = mapped_column(String(40), nullable=True)

    registrant_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="RESTRICT"), nullable=True
    )
    current_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True
    )
    department_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )

    vendor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    purpose: Mapped[str | None] = mapped_column(String(255), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    cancellation_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Self-reported by an employee during verification, awaiting admin reconciliation
    pending_review: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __mapper_args__ = {"version_id_col": row_version}

    registrant: Mapped["Employee | None"] = relationship(foreign_keys=[registrant_id])
    current_user: Mapped["Employee | None"] = relationship(foreign_keys=[current_user_id])
    department: Mapped["Department | None"] = relationship()
    usage_history: Mapped[list["PhoneUsageHistory"]] = relationship(
        back_populates="phone",
        order_by="PhoneUsageHistory.start_date",
    )
    risk_cases: Mapped[list["RiskCase"]] = relationship(
        back_populates="phone",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RiskCase.detected_at",
    )


class PhoneUsageHistory(Base):
    """One assignment period of a phone to an employee."""

    __tablename__ = "phone_usage_history"
    __table_args__ = (
        Index("idx_phone_usage_phone", "phone_id", "start_date"),
        Index("idx_phone_usage_employee", "employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("phone_numbers.id", ondelete="RESTRICT"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    phone: Mapped["PhoneNumber"] = relationship(back_populates="usage_history")
    employee: Mapped["Employee"] = relationship()


class RiskCase(Base):
    """
    A phone flagged for admin disposition.

    At most one open case per (phone, reason); the partial unique index makes
    concurrent detection runs idempotent.
    """

    __tablename__ = "risk_cases"
    __table_args__ = (
        Index(
            "uq_risk_cases_open",
            "phone_id",
            "reason",
            unique=True,
            postgresql_where=text("resolved_at IS NULL"),
            sqlite_where=text("resolved_at IS NULL"),
        ),
        Index("idx_risk_cases_detected", "detected_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("phone_numbers.id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(40), nullable=False)
    # Employee whose departure or report raised the case
    employee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="SET NULL"), nullable=True
    )
    detected_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    resolution_action: Mapped[str | None] = mapped_column(String(40), nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    phone: Mapped["PhoneNumber"] = relationship(back_populates="risk_cases")
