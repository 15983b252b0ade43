"""
ARQ background task: end subscriptions whose paid period has elapsed.

Scheduled hourly. Run with ``arq app.tasks.subscription_expiry.WorkerSettings``.
"""

from __future__ import annotations

import structlog
from arq import cron
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.database import get_session_context
from app.services.subscriptions import expire_lapsed

log = structlog.get_logger()
settings = get_settings()


async def expire_lapsed_subscriptions(ctx: dict) -> int:
    """Mark lapsed subscriptions expired (or canceled) and update their companies.

    Returns the number of subscriptions changed.
    """
    async with get_session_context() as session:
        count = await expire_lapsed(session)

    if count:
        log.info("subscription_expiry.batch_completed", count=count)
    return count


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [expire_lapsed_subscriptions]
    cron_jobs = [
        # Every hour, on the hour
        cron(expire_lapsed_subscriptions, minute=0),
    ]
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
