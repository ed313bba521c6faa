from __future__ import annotations
import asyncio
from uuid import UUID
import structlog
from redis import Redis
from redis.exceptions import RedisError
from rq import Queue
from fitstake.config import settings
from fitstake.db import SessionLocal
from fitstake.services.settlement import process_pending_payouts

log = structlog.get_logger()

_queue: Queue | None = None

def get_queue() -> Queue:
    global _queue
    if _queue is None:
        _queue = Queue("payouts", connection=Redis.from_url(settings.redis_url))
    return _queue

async def _run(challenge_id: str) -> int:
    async with SessionLocal() as session:
        processed = await process_pending_payouts(session, UUID(challenge_id))
    log.info("payout_job_done", challenge_id=challenge_id, processed=processed)
    return processed

def process_payouts(challenge_id: str) -> int:
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_run(challenge_id))

def enqueue_payouts(challenge_id: UUID) -> bool:
    """Hand the pending payouts to the worker. Payouts stay pending (and retryable) if Redis is down."""
    if not settings.payout_queue_enabled:
        return False
    try:
        get_queue().enqueue(process_payouts, str(challenge_id), job_timeout=settings.payout_job_timeout)
    except RedisError as e:
        log.warning("payout_enqueue_failed", challenge_id=str(challenge_id), error=str(e))
        return False
    return True
