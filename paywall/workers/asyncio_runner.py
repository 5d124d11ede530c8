from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from paywall.db.session import dispose_engine

T = TypeVar("T")
logger = structlog.get_logger(__name__)


async def _run_in_fresh_pool(job_name: str, awaitable: Awaitable[T]) -> T:
    # asyncpg connections are bound to the loop that opened them.
    await dispose_engine()
    started = time.monotonic()
    try:
        return await awaitable
    finally:
        await dispose_engine()
        logger.info(
            "worker_job_finished",
            job=job_name,
            duration_ms=int((time.monotonic() - started) * 1000),
        )


def run_async_job(awaitable: Awaitable[T], *, job_name: str = "job") -> T:
    """Run one async reliability job from a synchronous Celery task."""
    return asyncio.run(_run_in_fresh_pool(job_name, awaitable))
