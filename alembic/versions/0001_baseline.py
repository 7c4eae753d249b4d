"""Baseline - directory, phone registry, verification campaigns and jobs.

Revision ID: 0001_baseline
Revises:
Create Date: 2026-09-14

Creates:
- departments, employees
- phone_numbers, phone_usage_history, risk_cases
- verification_campaigns, verification_tokens, verification_submissions,
  phone_verification_records, unlisted_phone_reports
- jobs
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ==========================================================================
    # Directory
    # ==========================================================================
    op.create_table(
        'departments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('parent_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['parent_id'], ['departments.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_departments_parent', 'departments', ['parent_id'])

    op.create_table(
        'employees',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.String(50), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('department_id', sa.Uuid(), nullable=True),
        sa.Column('employment_status', sa.String(20), nullable=False),
        sa.Column('hire_date', sa.Date(), nullable=True),
        sa.Column('termination_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('employee_id'),
    )
    op.create_index('idx_employees_department', 'employees', ['department_id'])
    op.create_index('idx_employees_status', 'employees', ['employment_status'])

    # ==========================================================================
    # Phone registry
    # ==========================================================================
    op.create_table(
        'phone_numbers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('number', sa.String(32), nullable=False),
        sa.Column('status', sa.String(40), nullable=False),
        sa.Column('status_before_risk', sa.String(40), nullable=True),
        sa.Column('registrant_id', sa.Uuid(), nullable=True),
        sa.Column('current_user_id', sa.Uuid(), nullable=True),
        sa.Column('department_id', sa.Uuid(), nullable=True),
        sa.Column('vendor', sa.String(100), nullable=True),
        sa.Column('purpose', sa.String(255), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('application_date', sa.Date(), nullable=True),
        sa.Column('cancellation_date', sa.Date(), nullable=True),
        sa.Column('pending_review', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('row_version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['registrant_id'], ['employees.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['current_user_id'], ['employees.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number'),
    )
    op.create_index('idx_phone_numbers_status', 'phone_numbers', ['status'])
    op.create_index('idx_phone_numbers_registrant', 'phone_numbers', ['registrant_id'])
    op.create_index('idx_phone_numbers_current_user', 'phone_numbers', ['current_user_id'])

    op.create_table(
        'phone_usage_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('phone_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['phone_id'], ['phone_numbers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_phone_usage_phone', 'phone_usage_history', ['phone_id', 'start_date'])
    op.create_index('idx_phone_usage_employee', 'phone_usage_history', ['employee_id'])

    op.create_table(
        'risk_cases',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('phone_id', sa.Uuid(), nullable=False),
        sa.Column('reason', sa.String(40), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=True),
        sa.Column('detected_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('resolution_action', sa.String(40), nullable=True),
        sa.Column('resolved_by', sa.String(255), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['phone_id'], ['phone_numbers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    # One open case per phone and reason; concurrent detection collides here
    op.create_index(
        'uq_risk_cases_open',
        'risk_cases',
        ['phone_id', 'reason'],
        unique=True,
        postgresql_where=sa.text('resolved_at IS NULL'),
        sqlite_where=sa.text('resolved_at IS NULL'),
    )
    op.create_index('idx_risk_cases_detected', 'risk_cases', ['detected_at'])

    # ==========================================================================
    # Verification campaigns
    # ==========================================================================
    counter = lambda name: sa.Column(name, sa.Integer(), server_default=sa.text('0'), nullable=False)  # noqa: E731
    op.create_table(
        'verification_campaigns',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('scope_type', sa.String(30), nullable=False),
        sa.Column('scope_values', sa.JSON(), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        counter('total_employees_to_process'),
        counter('tokens_generated_count'),
        counter('emails_attempted_count'),
        counter('emails_succeeded_count'),
        counter('emails_failed_count'),
        counter('resend_attempted_count'),
        counter('resend_succeeded_count'),
        sa.Column('error_summary', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.String(255), nullable=True),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_verification_campaigns_status', 'verification_campaigns', ['status'])
    op.create_index('idx_verification_campaigns_created', 'verification_campaigns', ['created_at'])

    op.create_table(
        'verification_tokens',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('token', sa.String(255), nullable=False),
        sa.Column('campaign_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('consumed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['verification_campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token'),
        sa.UniqueConstraint('campaign_id', 'employee_id', name='uq_verification_token_employee'),
    )
    op.create_index('idx_verification_tokens_campaign', 'verification_tokens', ['campaign_id', 'consumed'])

    op.create_table(
        'verification_submissions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('token_id', sa.Uuid(), nullable=False),
        sa.Column('campaign_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['token_id'], ['verification_tokens.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['campaign_id'], ['verification_campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_id'),
    )
    op.create_index('idx_verification_submissions_campaign', 'verification_submissions', ['campaign_id'])

    op.create_table(
        'phone_verification_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('submission_id', sa.Uuid(), nullable=False),
        sa.Column('campaign_id', sa.Uuid(), nullable=False),
        sa.Column('phone_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(30), nullable=False),
        sa.Column('purpose', sa.String(255), nullable=True),
        sa.Column('issue_category', sa.String(100), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('original_status', sa.String(40), nullable=False),
        sa.Column('admin_action_status', sa.String(20), nullable=False),
        sa.Column('handled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['submission_id'], ['verification_submissions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['campaign_id'], ['verification_campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['phone_id'], ['phone_numbers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_phone_verification_campaign', 'phone_verification_records', ['campaign_id', 'action'])
    op.create_index('idx_phone_verification_phone', 'phone_verification_records', ['phone_id'])

    op.create_table(
        'unlisted_phone_reports',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('submission_id', sa.Uuid(), nullable=False),
        sa.Column('campaign_id', sa.Uuid(), nullable=False),
        sa.Column('employee_id', sa.Uuid(), nullable=False),
        sa.Column('phone_id', sa.Uuid(), nullable=True),
        sa.Column('phone_number', sa.String(32), nullable=False),
        sa.Column('purpose', sa.String(255), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['submission_id'], ['verification_submissions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['campaign_id'], ['verification_campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['phone_id'], ['phone_numbers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_unlisted_reports_campaign', 'unlisted_phone_reports', ['campaign_id'])
    op.create_index('idx_unlisted_reports_employee', 'unlisted_phone_reports', ['employee_id'])

    # ==========================================================================
    # Jobs
    # ==========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('run_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_jobs_pending', 'jobs', ['status', 'run_at'])
    op.create_index(
        'uq_job_idempotency',
        'jobs',
        ['idempotency_key'],
        unique=True,
        postgresql_where=sa.text('idempotency_key IS NOT NULL'),
        sqlite_where=sa.text('idempotency_key IS NOT NULL'),
    )


def downgrade() -> None:
    op.drop_table('jobs')
    op.drop_table('unlisted_phone_reports')
    op.drop_table('phone_verification_records')
    op.drop_table('verification_submissions')
    op.drop_table('verification_tokens')
    op.drop_table('verification_campaigns')
    op.drop_table('risk_cases')
    op.drop_table('phone_usage_history')
    op.drop_table('phone_numbers')
    op.drop_table('employees')
    op.drop_table('departments')
