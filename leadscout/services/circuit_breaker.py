"""
Per-provider circuit breakers with Redis-backed state.

Every outbound call to a data provider or the LLM goes through the breaker
named after that provider. States:
  - CLOSED    → calls pass through
  - OPEN      → too many consecutive failures, calls short-circuit
  - HALF_OPEN → reset_timeout elapsed, the next call is a probe

State and health counters for one breaker live in a single Redis hash
(cb:<name>) so the /api/health endpoint reads them in one round trip.
If Redis is unreachable the breaker fails open: calls are allowed.
"""
import logging
import time

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN — {name} temporarily unavailable")


class CircuitBreaker:
    """
    Usage:
        cb = CircuitBreaker('apollo', redis_client, failure_threshold=5, reset_timeout=120)
        response = cb.call(requests.post, url, json=payload, timeout=30)
    """

    PREFIX = 'cb'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    @property
    def key(self):
        return f'{self.PREFIX}:{self.name}'

    def _read(self):
        try:
            return self.redis.hgetall(self.key) or {}
        except Exception:
            return {}

    @property
    def state(self):
        data = self._read()
        s = data.get('state') or CLOSED
        if s == OPEN:
            opened_at = float(data.get('opened_at') or 0)
            if time.time() - opened_at > self.reset_timeout:
                return HALF_OPEN
        return s

    @property
    def failure_count(self):
        return int(self._read().get('failures') or 0)

    def retry_after(self):
        opened_at = float(self._read().get('opened_at') or 0)
        return max(0.0, self.reset_timeout - (time.time() - opened_at))

    def call(self, func, *args, **kwargs):
        """Execute func through the breaker; re-raises whatever func raises."""
        if self.state == OPEN:
            raise CircuitOpenError(self.name, retry_after=self.retry_after())
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def _on_success(self):
        try:
            pipe = self.redis.pipeline()
            pipe.hset(self.key, mapping={'state': CLOSED, 'failures': 0, 'last_success': time.time()})
            pipe.hincrby(self.key, 'total_success', 1)
            pipe.execute()
        except Exception:
            logger.debug("Could not record success for '%s'", self.name)

    def _on_failure(self, error):
        try:
            failures = self.redis.hincrby(self.key, 'failures', 1)
            pipe = self.redis.pipeline()
            pipe.hincrby(self.key, 'total_failure', 1)
            pipe.hset(self.key, mapping={'last_failure': time.time(), 'last_error': str(error)[:200]})
            if failures >= self.failure_threshold:
                pipe.hset(self.key, mapping={'state': OPEN, 'opened_at': time.time()})
            pipe.execute()
        except Exception:
            logger.debug("Could not record failure for '%s'", self.name)
            return
        if failures >= self.failure_threshold:
            logger.warning("Circuit '%s' OPENED after %d failures: %s", self.name, failures, error)
        else:
            logger.info("Circuit '%s' failure %d/%d: %s", self.name, failures, self.failure_threshold, error)

    def reset(self):
        """Manually close the breaker (keeps lifetime counters)."""
        try:
            self.redis.hset(self.key, mapping={'state': CLOSED, 'failures': 0, 'opened_at': 0})
            logger.info("Circuit '%s' manually reset to CLOSED", self.name)
        except Exception as e:
            logger.error("Failed to reset circuit '%s': %s", self.name, e)

    def get_health(self):
        data = self._read()
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': int(data.get('failures') or 0),
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': int(data.get('total_success') or 0),
            'total_failure': int(data.get('total_failure') or 0),
            'last_success': float(data['last_success']) if data.get('last_success') else None,
            'last_failure': float(data['last_failure']) if data.get('last_failure') else None,
            'last_error': data.get('last_error', ''),
        }


# ── Registry ──────────────────────────────────────────────────────────────────

# name → (failure_threshold, reset_timeout)
BREAKER_SETTINGS = {
    'openai': (5, 60),
    'apollo': (5, 120),
    'hunter': (3, 180),
    'pdl': (3, 180),
    'firecrawl': (3, 300),
    'jina': (3, 300),
    'zerobounce': (3, 180),
}

_registry = {}


def get_breaker(name, redis_client=None):
    """Get or create the named breaker (one instance per name per process)."""
    if name not in _registry:
        if redis_client is None:
            from leadscout.extensions import redis_client
        threshold, timeout = BREAKER_SETTINGS.get(name, (3, 300))
        _registry[name] = CircuitBreaker(name, redis_client, failure_threshold=threshold, reset_timeout=timeout)
    return _registry[name]


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """Register a breaker for every known provider."""
    for name in BREAKER_SETTINGS:
        get_breaker(name, redis_client)
    return get_all_breakers()
