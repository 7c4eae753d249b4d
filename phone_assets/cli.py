"""CLI tools for phone-asset administration."""

import logging
from uuid import UUID

import click

from phone_assets.core.async_utils import run_async
from phone_assets.core.exceptions import DomainError
from phone_assets.db.enums import EmploymentStatus
from phone_assets.db.session import SessionLocal


@click.group()
@click.option("--verbose", is_flag=True, help="Log at INFO level")
def cli(verbose: bool):
    """Phone-asset CLI tools."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@cli.command("detect-risk")
def detect_risk():
    """
    Re-run registrant-departure detection for every departed employee.

    Safe to run repeatedly; phones already flagged are left alone.
    """
    from phone_assets.services import risk_service

    db = SessionLocal()
    try:
        flagged = risk_service.sweep_departed(db)
        click.echo(f"✓ Flagged {flagged} phone(s)")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command("mark-departed")
@click.argument("employee_code")
def mark_departed(employee_code: str):
    """Mark an employee as departed and flag their registered phones."""
    from phone_assets.services import directory_service

    db = SessionLocal()
    try:
        employee, flagged = directory_service.change_employment_status(
            db, employee_code, EmploymentStatus.DEPARTED
        )
        click.echo(f"✓ {employee.full_name} ({employee.employee_id}) marked as departed")
        click.echo(f"  Phones flagged for review: {flagged}")
    except DomainError as e:
        db.rollback()
        click.echo(f"❌ {e.message}")
    finally:
        db.close()


@cli.command("dispatch")
@click.argument("batch_id")
def dispatch(batch_id: str):
    """Send a batch's verification emails now instead of waiting for the worker."""
    from phone_assets.services import verification_dispatch_service

    db = SessionLocal()
    try:
        outcome = run_async(
            verification_dispatch_service.dispatch_campaign(db, UUID(batch_id))
        )
        click.echo(f"✓ Batch {batch_id}: {outcome.status.value}")
        click.echo(
            f"  attempted={outcome.attempted} succeeded={outcome.succeeded} failed={outcome.failed}"
        )
        if outcome.fatal_error:
            click.echo(f"  ❌ {outcome.fatal_error}")
    except DomainError as e:
        db.rollback()
        click.echo(f"❌ {e.message}")
    finally:
        db.close()


@cli.command("resend")
@click.argument("batch_id")
@click.option("--employee", "employees", multiple=True, help="Employee code (repeatable)")
def resend(batch_id: str, employees: tuple[str, ...]):
    """Re-send failed verification emails of a batch."""
    from phone_assets.services import verification_dispatch_service

    db = SessionLocal()
    try:
        result = run_async(
            verification_dispatch_service.resend(db, UUID(batch_id), list(employees) or None)
        )
        click.echo(
            f"✓ Resent {result.total_attempted}: {result.success_count} ok, {result.failed_count} failed"
        )
    except DomainError as e:
        db.rollback()
        click.echo(f"❌ {e.message}")
    finally:
        db.close()


@cli.command("run-jobs")
def run_jobs():
    """Process one batch of due background jobs and exit."""
    from phone_assets.worker import run_pending_jobs

    db = SessionLocal()
    try:
        processed = run_async(run_pending_jobs(db))
        click.echo(f"✓ Processed {processed} job(s)")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
