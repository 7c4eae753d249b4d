"""Verification campaign job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

logger = logging.getLogger(__name__)


async def process_verification_dispatch(db, job) -> None:
    """
    Process a VERIFICATION_DISPATCH job - email every token of a campaign.

    Payload:
        - campaign_id: UUID of the verification campaign
    """
    from phone_assets.services import verification_dispatch_service

    payload = job.payload or {}
    campaign_id = payload.get("campaign_id")
    if not campaign_id:
        raise Exception("Missing campaign_id in verification dispatch job")

    logger.info("Starting verification dispatch: campaign=%s", campaign_id)
    try:
        outcome = await verification_dispatch_service.dispatch_campaign(db, UUID(campaign_id))
    except Exception as e:
        logger.error(
            "Verification dispatch failed: campaign=%s error=%s",
            campaign_id,
            type(e).__name__,
        )
        raise

    logger.info(
        "Verification dispatch finished: campaign=%s status=%s attempted=%d succeeded=%d failed=%d",
        campaign_id,
        outcome.status.value,
        outcome.attempted,
        outcome.succeeded,
        outcome.failed,
    )
