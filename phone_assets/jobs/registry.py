"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from phone_assets.db.enums import JobType
from phone_assets.jobs.handlers import verification

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.VERIFICATION_DISPATCH.value: verification.process_verification_dispatch,
}


def get_handler(job_type: str) -> JobHandler | None:
    return JOB_HANDLERS.get(job_type)
