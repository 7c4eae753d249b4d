"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from phone_assets.db.base import Base
from phone_assets.db.enums import AdminActionStatus, CampaignStatus
from phone_assets.db.models.directory import Employee
from phone_assets.db.models.phones import PhoneNumber


class VerificationCampaign(Base):
    """
    One run of the periodic "which numbers do you use?" workflow.

    Counters are only ever incremented with single UPDATE statements, so a
    status read is always a consistent single-row snapshot.
    """

    __tablename__ = "verification_campaigns"
    __table_args__ = (
        Index("idx_verification_campaigns_status", "status"),
        Index("idx_verification_campaigns_created", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    scope_type: Mapped[str] = mapped_column(String(30), nullable=False)
    scope_values: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(30), default=CampaignStatus.PENDING.value, nullable=False
    )

    total_employees_to_process: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    tokens_generated_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    emails_attempted_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    emails_succeeded_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    emails_failed_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    resend_attempted_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    resend_succeeded_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )

    # [{employeeId, employeeName, emailAddress, reason}]
    error_summary: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    tokens: Mapped[list["VerificationToken"]] = relationship(
        back_populates="campaign",
        cascade="all, delete-orphan",
    )


class VerificationToken(Base):
    """Time-limited credential issued to one employee for one campaign."""

    __tablename__ = "verification_tokens"
    __table_args__ = (
        UniqueConstraint("campaign_id", "employee_id", name="uq_verification_token_employee"),
        Index("idx_verification_tokens_campaign", "campaign_id", "consumed"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("verification_campaigns.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    consumed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    campaign: Mapped["VerificationCampaign"] = relationship(back_populates="tokens")
    employee: Mapped["Employee"] = relationship()


class VerificationSubmission(Base):
    """One employee's answer to a campaign (exactly one per token)."""

    __tablename__ = "verification_submissions"
    __table_args__ = (Index("idx_verification_submissions_campaign", "campaign_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    token_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("verification_tokens.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("verification_campaigns.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )
    submitted_at: Mapped[datetime] = mapped_column(nullable=False)

    employee: Mapped["Employee"] = relationship()
    records: Mapped[list["PhoneVerificationRecord"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
    )
    unlisted_reports: Mapped[list["UnlistedPhoneReport"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
    )


class PhoneVerificationRecord(Base):
    """
    Per-phone answer within a submission.

    A report_issue record doubles as the issue an admin follows up on
    (admin_action_status).
    """

    __tablename__ = "phone_verification_records"
    __table_args__ = (
        Index("idx_phone_verification_campaign", "campaign_id", "action"),
        Index("idx_phone_verification_phone", "phone_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("verification_submissions.id", ondelete="CASCADE"), nullable=False
    )
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("verification_campaigns.id", ondelete="CASCADE"), nullable=False
    )
    phone_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("phone_numbers.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )

    action: Mapped[str] = mapped_column(String(30), nullable=False)
    purpose: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issue_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_status: Mapped[str] = mapped_column(String(40), nullable=False)

    admin_action_status: Mapped[str] = mapped_column(
        String(20), default=AdminActionStatus.PENDING.value, nullable=False
    )
    handled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    submission: Mapped["VerificationSubmission"] = relationship(back_populates="records")
    phone: Mapped["PhoneNumber"] = relationship()
    employee: Mapped["Employee"] = relationship()


class UnlistedPhoneReport(Base):
    """A number the employee uses that was not in their listed phones."""

    __tablename__ = "unlisted_phone_reports"
    __table_args__ = (
        Index("idx_unlisted_reports_campaign", "campaign_id"),
        Index("idx_unlisted_reports_employee", "employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("verification_submissions.id", ondelete="CASCADE"), nullable=False
    )
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("verification_campaigns.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )
    phone_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("phone_numbers.id", ondelete="SET NULL"), nullable=True
    )
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    purpose: Mapped[str] = mapped_column(String(255), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    submission: Mapped["VerificationSubmission"] = relationship(
        back_populates="unlisted_reports"
    )
    employee: Mapped["Employee"] = relationship()
