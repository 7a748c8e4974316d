"""
Event bus — named events onto RQ jobs.

  campaign/started → pipeline.manager.run_pipeline
  lead/created     → pipeline.triggers.on_lead_created
  contact/added    → pipeline.triggers.on_contact_added

Retry counts and the job timeout come from agent_config.yaml.
"""
import logging

from leadscout.pipeline.agent_config import get_job_timeout, get_retries

logger = logging.getLogger('leadscout.events')

EVENT_NAMES = ('campaign/started', 'lead/created', 'contact/added')

# Events that outside callers may emit through POST /api/flows/emit-event
EXTERNAL_EVENTS = ('lead/created', 'contact/added')


class UnknownEvent(ValueError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Unknown event: {name}")


def _handler(name):
    if name == 'campaign/started':
        from leadscout.pipeline.manager import run_pipeline

        def enqueue_args(data):
            return run_pipeline, (data['campaignId'], data['runId'], data.get('agentIds') or [])
        return enqueue_args

    from leadscout.pipeline.triggers import on_contact_added, on_lead_created
    fn = on_lead_created if name == 'lead/created' else on_contact_added
    return lambda data: (fn, (data,))


def send_event(name: str, data: dict = None):
    """Enqueue the job handling this event; returns the RQ job."""
    from rq import Retry
    from leadscout.pipeline.manager import _get_queue

    if name not in EVENT_NAMES:
        raise UnknownEvent(name)

    fn, args = _handler(name)(data or {})
    retries = get_retries(name)
    job = _get_queue().enqueue(
        fn, *args,
        job_timeout=get_job_timeout(),
        retry=Retry(max=retries) if retries else None,
    )
    logger.info("Event %s → job %s", name, getattr(job, 'id', None))
    return job
