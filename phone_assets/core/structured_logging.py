"""Structured logging helpers (PII-safe)."""

from typing import Any

from phone_assets.utils.masking import mask_email, mask_phone_number


def build_log_context(
    *,
    campaign_id: str | None = None,
    employee_id: str | None = None,
    phone_number: str | None = None,
    email: str | None = None,
    job_id: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict with contact details masked."""
    context: dict[str, Any] = {}
    if campaign_id:
        context["campaign_id"] = campaign_id
    if employee_id:
        context["employee_id"] = employee_id
    if phone_number:
        context["phone"] = mask_phone_number(phone_number)
    if email:
        context["email"] = mask_email(email)
    if job_id:
        context["job_id"] = job_id
    return context
