"""
System-wide concurrency slots for background jobs, held in Redis.

Each job family (pipeline, fanout) owns one sorted set of holders scored by
acquisition time. A holder older than the slot TTL is treated as abandoned
(crashed worker) and evicted on the next acquire. If Redis is unreachable
the limiter fails open, like the circuit breakers.
"""
import logging
import time
from contextlib import contextmanager

from leadscout.pipeline.agent_config import get_concurrency_limit, get_slot_ttl

logger = logging.getLogger('pipeline.concurrency')


class ConcurrencyLimiter:
    PREFIX = 'concurrency'

    def __init__(self, family, limit, redis_client, ttl=14400):
        self.family = family
        self.limit = limit
        self.redis = redis_client
        self.ttl = ttl

    @property
    def key(self):
        return f'{self.PREFIX}:{self.family}'

    def acquire(self, holder) -> bool:
        """Take a slot for holder. Re-acquiring a held slot succeeds."""
        now = time.time()
        try:
            self.redis.zremrangebyscore(self.key, '-inf', now - self.ttl)
            if self.redis.zscore(self.key, holder) is not None:
                return True
            self.redis.zadd(self.key, {holder: now})
            rank = self.redis.zrank(self.key, holder)
        except Exception:
            logger.warning("Concurrency store unavailable, allowing %s job %s", self.family, holder)
            return True

        if rank is not None and rank >= self.limit:
            self.release(holder)
            logger.info("No free %s slot for %s (limit %d)", self.family, holder, self.limit)
            return False
        return True

    def release(self, holder):
        try:
            self.redis.zrem(self.key, holder)
        except Exception:
            logger.debug("Could not release %s slot for %s", self.family, holder)

    @contextmanager
    def slot(self, holder):
        """Yields True with a slot held, False when the family is at its limit."""
        acquired = self.acquire(holder)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(holder)


def get_limiter(family, redis_client=None) -> ConcurrencyLimiter:
    if redis_client is None:
        from leadscout.extensions import redis_client
    return ConcurrencyLimiter(family, get_concurrency_limit(family), redis_client, ttl=get_slot_ttl())
