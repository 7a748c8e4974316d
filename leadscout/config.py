"""
Centralized configuration — all env vars, provider credentials, status values.
"""
import os
from dataclasses import dataclass
from typing import Optional


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── OpenAI ────────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
LLM_MODEL = os.getenv('LLM_MODEL', 'gpt-4o')

# ── Data providers ───────────────────────────────────────────────────────────
APOLLO_API_KEY = os.getenv('APOLLO_API_KEY')
HUNTER_API_KEY = os.getenv('HUNTER_API_KEY')
PDL_API_KEY = os.getenv('PDL_API_KEY')
FIRECRAWL_API_KEY = os.getenv('FIRECRAWL_API_KEY')
JINA_API_KEY = os.getenv('JINA_API_KEY')
ZEROBOUNCE_API_KEY = os.getenv('ZEROBOUNCE_API_KEY')

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URL = os.getenv('SLACK_WEBHOOK_URL')

# ── Fake agent executor for local runs ───────────────────────────────────────
MOCK_PIPELINE = os.getenv('MOCK_PIPELINE')


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials handed to the capability adapters at startup.

    Adapters receive their key through the constructor and never read the
    environment themselves, so tests can build them with any value.
    """
    apollo_api_key: Optional[str] = None
    hunter_api_key: Optional[str] = None
    pdl_api_key: Optional[str] = None
    firecrawl_api_key: Optional[str] = None
    jina_api_key: Optional[str] = None
    zerobounce_api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'ProviderConfig':
        return cls(
            apollo_api_key=APOLLO_API_KEY,
            hunter_api_key=HUNTER_API_KEY,
            pdl_api_key=PDL_API_KEY,
            firecrawl_api_key=FIRECRAWL_API_KEY,
            jina_api_key=JINA_API_KEY,
            zerobounce_api_key=ZEROBOUNCE_API_KEY,
        )


# ── Pipeline stage definitions ────────────────────────────────────────────────
PIPELINE_STAGES = [
    'discovery',
    'enrichment',
    'qualification',
]

# ── Agent display names (shown in the activity feed) ─────────────────────────
AGENT_NAMES = {
    'runner': 'Campaign Runner',
    'discovery': 'Lead Scout',
    'enrichment': 'Lead Enricher',
    'qualification': 'Lead Qualifier',
    'flows': 'Flow Engine',
}
