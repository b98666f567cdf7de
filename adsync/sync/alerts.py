"""ADSYNC — Downstream Alert Trigger.

Fire-and-forget: the sync schedules the POST and returns. A failed alert
call is logged and never reaches the caller.
"""

import asyncio
from typing import Optional, Set

import httpx

from adsync.config import settings
from adsync.core.logging import get_logger

logger = get_logger("sync.alerts")

# Strong references so pending tasks are not garbage-collected mid-flight
_pending: Set[asyncio.Task] = set()


async def _post_alert_request(
    owner_id: str, url: str, http_client: Optional[httpx.AsyncClient] = None
) -> None:
    try:
        if http_client is not None:
            await http_client.post(url, json={"accountOwnerId": owner_id})
        else:
            async with httpx.AsyncClient(timeout=settings.alerts_timeout) as client:
                await client.post(url, json={"accountOwnerId": owner_id})
        logger.info("Alert generation triggered", extra={"owner_id": owner_id})
    except Exception as e:
        logger.error(f"Alert generation failed: {e}", extra={"owner_id": owner_id})


def trigger_alert_generation(
    owner_id: str, http_client: Optional[httpx.AsyncClient] = None
) -> Optional[asyncio.Task]:
    """Schedule the alert POST without awaiting it.

    Returns the task (or None when alerts are disabled) so callers that do
    care, such as tests, can await it.
    """
    url = settings.alerts_url
    if not url:
        return None
    try:
        task = asyncio.get_running_loop().create_task(
            _post_alert_request(owner_id, url, http_client)
        )
    except RuntimeError as e:
        logger.error(f"Failed to trigger alerts: {e}", extra={"owner_id": owner_id})
        return None
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task
