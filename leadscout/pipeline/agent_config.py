"""
Agent configuration loader — model, round caps, concurrency limits, retries.

YAML file with in-memory cache and hardcoded fallback if the file is missing.
"""
import logging
import os

import yaml

logger = logging.getLogger('pipeline.agent_config')


_agent_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'model': 'gpt-4o',
        'max_rounds': {'discovery': 25, 'enrichment': 15, 'qualification': 10},
        'concurrency': {'pipeline': 5, 'fanout': 10},
        'retries': {'campaign/started': 2, 'lead/created': 1, 'contact/added': 1},
        'slot_ttl': 14400,
        'requeue_delay': 30,
        'job_timeout': 14400,
    }


def load_agent_config() -> dict:
    """Load agent config from YAML, with in-memory cache and hardcoded fallback."""
    global _agent_config
    if _agent_config is not None:
        return _agent_config

    config_path = os.path.join(os.path.dirname(__file__), 'agent_config.yaml')
    try:
        with open(config_path, 'r') as f:
            _agent_config = yaml.safe_load(f)
        logger.info("Agent config loaded from YAML (version=%s)", _agent_config.get('version', '?'))
    except Exception as e:
        logger.warning("Agent config YAML not found (%s), using defaults", e)
        _agent_config = _default_config()

    return _agent_config


def get_model(override: str = None) -> str:
    """LLM model name: explicit override (LLM_MODEL env) wins over the YAML value."""
    return override or load_agent_config().get('model', 'gpt-4o')


def get_max_rounds(stage: str) -> int:
    defaults = _default_config()['max_rounds']
    return load_agent_config().get('max_rounds', {}).get(stage, defaults.get(stage, 10))


def get_concurrency_limit(family: str) -> int:
    defaults = _default_config()['concurrency']
    return load_agent_config().get('concurrency', {}).get(family, defaults.get(family, 5))


def get_retries(event_name: str) -> int:
    return load_agent_config().get('retries', {}).get(event_name, 1)


def get_slot_ttl() -> int:
    return load_agent_config().get('slot_ttl', 14400)


def get_requeue_delay() -> int:
    return load_agent_config().get('requeue_delay', 30)


def get_job_timeout() -> int:
    return load_agent_config().get('job_timeout', 14400)


def reset_cache():
    """Reset the in-memory cache (useful for testing)."""
    global _agent_config
    _agent_config = None
