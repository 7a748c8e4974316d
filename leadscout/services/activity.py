"""
Activity feed writer — append-only AgentActivity rows.

Pass `session` to write inside the caller's unit of work (e.g. alongside
a lead insert). Without one the write is best-effort: failures are logged
and never reach the pipeline.
"""
import logging

from leadscout.config import AGENT_NAMES
from leadscout.database import get_session
from leadscout.models.activity import AgentActivity

logger = logging.getLogger('services.activity')


def log_activity(agent, action, detail='', campaign_id=None, status='completed', session=None):
    """agent is a key of AGENT_NAMES ('discovery', 'runner', ...) or a display name."""
    activity = AgentActivity(
        agent_name=AGENT_NAMES.get(agent, agent),
        campaign_id=campaign_id,
        action=action,
        detail=detail or '',
        status=status,
    )
    if session is not None:
        session.add(activity)
        return activity

    own = get_session()
    try:
        own.add(activity)
        own.commit()
        return activity
    except Exception:
        own.rollback()
        logger.error("Failed to log activity %s for campaign %s", action, campaign_id, exc_info=True)
        return None
    finally:
        own.close()
