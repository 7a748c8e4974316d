"""Shared test fixtures."""
import os

# Must be set before leadscout.config is imported anywhere
os.environ['DATABASE_URL'] = 'sqlite://'
for _var in ('SLACK_WEBHOOK_URL', 'OPENAI_API_KEY', 'MOCK_PIPELINE'):
    os.environ.pop(_var, None)

import pytest
from unittest.mock import patch, MagicMock

from leadscout.database import Base, engine, get_session


class FakeRedis:
    """Minimal in-memory Redis fake: strings, hashes and sorted sets."""

    def __init__(self):
        self.get_store = {}
        self.hash_store = {}
        self.zsets = {}

    # strings
    def get(self, key):
        return self.get_store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.get_store:
            return None
        self.get_store[key] = value
        return True

    def delete(self, *keys):
        for k in keys:
            self.get_store.pop(k, None)
            self.hash_store.pop(k, None)
            self.zsets.pop(k, None)

    # hashes
    def hset(self, key, field=None, value=None, mapping=None):
        h = self.hash_store.setdefault(key, {})
        if mapping:
            h.update({k: str(v) for k, v in mapping.items()})
        if field is not None:
            h[field] = str(value)

    def hincrby(self, key, field, amount=1):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    # sorted sets
    def zadd(self, key, mapping):
        z = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in z)
        z.update(mapping)
        return added

    def zrem(self, key, member):
        return 1 if self.zsets.get(key, {}).pop(member, None) is not None else 0

    def zscore(self, key, member):
        return self.zsets.get(key, {}).get(member)

    def zrank(self, key, member):
        z = self.zsets.get(key, {})
        if member not in z:
            return None
        ordered = sorted(z, key=lambda m: (z[m], m))
        return ordered.index(member)

    def zcard(self, key):
        return len(self.zsets.get(key, {}))

    def zremrangebyscore(self, key, low, high):
        z = self.zsets.get(key, {})
        low = float(low)
        high = float(high)
        stale = [m for m, score in z.items() if low <= score <= high]
        for m in stale:
            del z[m]
        return len(stale)

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Fake Redis pipeline that queues calls and runs them on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self._redis, name)(*args, **kwargs) for name, args, kwargs in self._ops]
        self._ops = []
        return results


@pytest.fixture(autouse=True)
def db():
    """Fresh schema on the shared in-memory SQLite engine for every test."""
    import leadscout.models.campaign  # noqa: F401
    import leadscout.models.agent_run  # noqa: F401
    import leadscout.models.discovered_lead  # noqa: F401
    import leadscout.models.activity  # noqa: F401
    import leadscout.models.campaign_metric  # noqa: F401
    import leadscout.models.flow  # noqa: F401
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def fake_redis():
    """Every lazy `from leadscout.extensions import redis_client` sees the fake."""
    from leadscout.services import circuit_breaker
    from leadscout.pipeline import manager
    from leadscout.pipeline import agent_config

    fake = FakeRedis()
    circuit_breaker._registry.clear()
    manager._queue = None
    agent_config.reset_cache()
    with patch('leadscout.extensions.redis_client', fake):
        yield fake
    circuit_breaker._registry.clear()
    manager._queue = None


@pytest.fixture
def mock_queue():
    """RQ queue double; returned by manager._get_queue()."""
    queue = MagicMock()
    queue.enqueue.return_value = MagicMock(id='job-1')
    with patch('leadscout.pipeline.manager._get_queue', return_value=queue):
        yield queue


@pytest.fixture
def session():
    s = get_session()
    yield s
    s.close()


@pytest.fixture
def app():
    """Flask test app."""
    from leadscout import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def make_campaign():
    """Factory fixture — inserts a Campaign row and returns it."""
    from leadscout.models.campaign import Campaign

    def _make(**overrides):
        defaults = dict(
            name='Fintech CTOs',
            status='draft',
            target_industry='Fintech',
            target_roles=['CTO', 'VP Engineering'],
            target_company_size='51-200',
            target_region='United States',
            search_criteria='Series A or later',
            confidence_threshold=70,
            max_leads_per_run=50,
            agent_ids=['agent-1'],
        )
        defaults.update(overrides)
        s = get_session()
        try:
            campaign = Campaign(**defaults)
            s.add(campaign)
            s.commit()
            return campaign
        finally:
            s.close()
    return _make


@pytest.fixture
def make_run():
    """Factory fixture — inserts an AgentRun row for a campaign."""
    from leadscout.models.agent_run import AgentRun

    def _make(campaign_id, **overrides):
        defaults = dict(campaign_id=campaign_id, status='pending', steps_total=3, run_metadata={})
        defaults.update(overrides)
        s = get_session()
        try:
            run = AgentRun(**defaults)
            s.add(run)
            s.commit()
            return run
        finally:
            s.close()
    return _make


@pytest.fixture
def make_lead():
    """Factory fixture — inserts a DiscoveredLead row for a campaign."""
    from leadscout.models.discovered_lead import DiscoveredLead

    def _make(campaign_id, **overrides):
        defaults = dict(
            campaign_id=campaign_id,
            name='Maya Chen',
            company='Northwind Analytics',
            position='VP Engineering',
            email='maya@northwind.io',
            confidence_score=60,
            status='pending_review',
            signals=['Matches target role'],
        )
        defaults.update(overrides)
        s = get_session()
        try:
            lead = DiscoveredLead(**defaults)
            s.add(lead)
            s.commit()
            return lead
        finally:
            s.close()
    return _make


@pytest.fixture
def make_flow():
    """Factory fixture — inserts a Flow with `nodes` FlowNode rows."""
    from leadscout.models.flow import Flow, FlowNode

    def _make(nodes=2, **overrides):
        defaults = dict(name='New lead follow-up', status='active', trigger_type='lead_created')
        defaults.update(overrides)
        s = get_session()
        try:
            flow = Flow(**defaults)
            s.add(flow)
            s.flush()
            for i in range(nodes):
                s.add(FlowNode(flow_id=flow.id, node_type='action', label=f'Step {i + 1}', config={'n': i}))
            s.commit()
            return flow
        finally:
            s.close()
    return _make
