"""
Trigger Router — maps external events onto the pipeline and the flow fan-out.

  manual start  → new pending run + campaign/started event (run_pipeline)
  manual stop   → campaign paused, active runs cancelled (cooperative)
  lead/contact created, webhook, hourly schedule, manual flow trigger
                → fan-out over active flows of the matching trigger type

Fan-out never touches the agent pipeline: each matching flow gets its nodes
loaded and counted, an activity entry and a Slack notice.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone

from leadscout.database import get_session
from leadscout.models.flow import Flow, FlowNode
from leadscout.pipeline.agent_config import get_requeue_delay
from leadscout.pipeline.concurrency import get_limiter
from leadscout.pipeline.ledger import RunLedger, CampaignStatus
from leadscout.services.activity import log_activity
from leadscout.services.notifications import notify_flow_triggered

logger = logging.getLogger('pipeline.triggers')

# Seconds a start request holds the per-campaign start lock
START_LOCK_TTL = 30


class CampaignAlreadyRunning(Exception):
    def __init__(self, campaign_id):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign {campaign_id} is already running")


class FlowNotFound(Exception):
    def __init__(self, flow_id):
        self.flow_id = flow_id
        super().__init__(f"Flow {flow_id} not found")


class FlowNotRunnable(Exception):
    """Flow exists but is inactive or has no nodes."""


def _redis():
    from leadscout.extensions import redis_client
    return redis_client


# ── Campaign start / stop ────────────────────────────────────────────────────

def start_campaign(campaign_id: str, ledger: RunLedger = None) -> dict:
    """
    Create a pending run and emit campaign/started.

    Raises CampaignNotFound, or CampaignAlreadyRunning when the campaign is
    running or already has a pending/running run.
    """
    from leadscout.events import send_event

    ledger = ledger or RunLedger()
    lock_key = f'campaign-start:{campaign_id}'
    try:
        locked = _redis().set(lock_key, '1', nx=True, ex=START_LOCK_TTL)
    except Exception:
        logger.warning("Start lock unavailable for campaign %s, continuing without it", campaign_id)
        locked = True
    if not locked:
        raise CampaignAlreadyRunning(campaign_id)

    try:
        campaign = ledger.get_campaign(campaign_id)
        if campaign.status == CampaignStatus.RUNNING.value or ledger.has_active_run(campaign_id):
            raise CampaignAlreadyRunning(campaign_id)

        run = ledger.create_run(campaign_id)
        try:
            send_event('campaign/started', {
                'campaignId': campaign_id,
                'runId': run.id,
                'agentIds': campaign.resolved_agent_ids(),
            })
        except Exception as e:
            logger.error("Could not enqueue run %s: %s", run.id, e)
            ledger.fail(run.id, f"Could not enqueue pipeline: {e}")
            raise
    finally:
        try:
            _redis().delete(lock_key)
        except Exception:
            logger.debug("Could not release start lock for campaign %s", campaign_id)

    log_activity('runner', 'campaign_started', f"Run {run.id[:8]} queued for {campaign.name}", campaign_id=campaign_id,
                 status='running')
    logger.info("Campaign %s started, run %s queued", campaign_id, run.id)
    return {'success': True, 'runId': run.id}


def stop_campaign(campaign_id: str, ledger: RunLedger = None) -> dict:
    """
    Pause the campaign and cancel its pending/running runs.

    In-flight stage work is not interrupted; stages notice the cancelled
    run before their next write. Nothing running → nothing changes.
    """
    ledger = ledger or RunLedger()
    campaign = ledger.get_campaign(campaign_id)
    cancelled = ledger.cancel_active(campaign_id)

    if not cancelled and campaign.status != CampaignStatus.RUNNING.value:
        logger.info("Stop for campaign %s: nothing running", campaign_id)
        return {'success': True, 'cancelledRuns': []}

    ledger.set_campaign_status(campaign_id, CampaignStatus.PAUSED)
    log_activity('runner', 'campaign_stopped',
                 f"Campaign stopped; {len(cancelled)} run(s) cancelled", campaign_id=campaign_id)
    logger.info("Campaign %s stopped, cancelled runs %s", campaign_id, cancelled)
    return {'success': True, 'cancelledRuns': cancelled}


# ── Flow fan-out ─────────────────────────────────────────────────────────────

FLOW_ACTIVITY = {
    'lead_created': 'flow_auto_triggered',
    'contact_added': 'flow_auto_triggered',
    'scheduled': 'flow_scheduled_run',
    'webhook': 'webhook_received',
    'manual': 'flow_triggered',
}


def _load_flows(trigger_type, flow_id=None):
    """Active flows of this trigger type with their ordered nodes, as dicts."""
    session = get_session()
    try:
        query = session.query(Flow).filter(Flow.status == 'active', Flow.trigger_type == trigger_type)
        if flow_id:
            query = query.filter(Flow.id == flow_id)
        flows = []
        for flow in query.all():
            nodes = session.query(FlowNode).filter(FlowNode.flow_id == flow.id).order_by(
                FlowNode.created_at, FlowNode.id).all()
            flows.append({
                'id': flow.id,
                'name': flow.name,
                'trigger_type': flow.trigger_type,
                'nodes': [
                    {'id': n.id, 'type': n.node_type, 'label': n.label, 'config': n.config or {}}
                    for n in nodes
                ],
            })
        return flows
    finally:
        session.close()


def _fire(trigger_type, flows, detail_for):
    """Activity + Slack per flow; returns [{flowId, nodeCount}]."""
    results = []
    for flow in flows:
        node_count = len(flow['nodes'])
        detail = detail_for(flow, node_count)
        log_activity('flows', FLOW_ACTIVITY[trigger_type], detail)
        notify_flow_triggered({**flow, 'node_count': node_count}, trigger_type, detail)
        results.append({'flowId': flow['id'], 'nodeCount': node_count})
    logger.info("Fan-out %s: %d flow(s) triggered", trigger_type, len(results))
    return results


def _fan_out(trigger_type, detail_for, requeue, flow_id=None):
    """Run one fan-out job under the shared fanout slot limit, or requeue it."""
    holder = f'{trigger_type}:{uuid.uuid4().hex}'
    with get_limiter('fanout').slot(holder) as acquired:
        if not acquired:
            from leadscout.pipeline.manager import _get_queue
            fn, args = requeue
            _get_queue().enqueue_in(timedelta(seconds=get_requeue_delay()), fn, *args)
            return {'status': 'requeued', 'triggered': 0}
        results = _fire(trigger_type, _load_flows(trigger_type, flow_id), detail_for)
        return {'triggered': len(results), 'results': results}


def on_lead_created(data: dict):
    """RQ job for lead/created. data: leadId, leadName, leadEmail, leadCompany."""
    data = data or {}
    return _fan_out(
        'lead_created',
        lambda flow, n: (f"Flow \"{flow['name']}\" auto-triggered by new lead: {data.get('leadName', 'unknown')} "
                         f"({data.get('leadCompany') or 'Unknown Company'})"),
        requeue=(on_lead_created, (data,)),
    )


def on_contact_added(data: dict):
    """RQ job for contact/added. data: contactId, contactName, contactEmail."""
    data = data or {}
    return _fan_out(
        'contact_added',
        lambda flow, n: f"Flow \"{flow['name']}\" auto-triggered by new contact: {data.get('contactName', 'unknown')}",
        requeue=(on_contact_added, (data,)),
    )


def run_scheduled_flows():
    """Hourly RQ job: fire every active scheduled flow, then book the next hour."""
    try:
        return _fan_out(
            'scheduled',
            lambda flow, n: f"Scheduled flow \"{flow['name']}\" executed with {n} nodes",
            requeue=(run_scheduled_flows, ()),
        )
    finally:
        schedule_hourly_flows()


def handle_webhook(flow_id=None, event=None, data=None) -> dict:
    """Fire one webhook flow (flow_id) or all active webhook flows."""
    results = _fan_out(
        'webhook',
        lambda flow, n: f"Webhook triggered flow \"{flow['name']}\" with event: {event or 'unknown'}",
        requeue=(handle_webhook, (flow_id, event, data)),
        flow_id=flow_id,
    )
    if results.get('status') == 'requeued':
        return {'success': True, 'status': 'queued', 'message': 'Flow workers busy, webhook queued', 'triggered': 0}
    if not results.get('triggered'):
        return {'success': False, 'message': 'No active webhook flows found', 'triggered': 0}
    return {
        'success': True,
        'triggered': results['triggered'],
        'results': results['results'],
        'received_at': datetime.now(timezone.utc).isoformat(),
    }


def trigger_flow(flow_id, trigger_source=None, context=None) -> dict:
    """Manually fire one flow regardless of its trigger type; returns its execution plan."""
    session = get_session()
    try:
        flow = session.get(Flow, flow_id)
        if flow is None:
            raise FlowNotFound(flow_id)
        if flow.status != 'active':
            raise FlowNotRunnable('Flow is not active. Activate it first.')
        flow_dict = {'id': flow.id, 'name': flow.name, 'trigger_type': flow.trigger_type, 'status': flow.status}
    finally:
        session.close()

    flows = _load_flows(flow_dict['trigger_type'], flow_id=flow_id)
    nodes = flows[0]['nodes'] if flows else []
    if not nodes:
        raise FlowNotRunnable('Flow has no nodes. Add nodes before triggering.')

    source = trigger_source or flow_dict['trigger_type'] or 'manual'
    _fire('manual', [{**flow_dict, 'nodes': nodes}],
          lambda f, n: f"Flow \"{f['name']}\" triggered via {source}")
    return {
        'success': True,
        'flow': flow_dict,
        'execution': {
            'triggered_at': datetime.now(timezone.utc).isoformat(),
            'trigger_source': source,
            'context': context or {},
            'node_count': len(nodes),
            'plan': nodes,
        },
    }


# ── Hourly schedule ──────────────────────────────────────────────────────────

def schedule_hourly_flows(now: datetime = None):
    """
    Book run_scheduled_flows at the next top of the hour.

    Every worker calls this at start-up; a SET NX key per hour slot makes
    sure only one of them enqueues the job.
    """
    from leadscout.pipeline.manager import _get_queue

    now = now or datetime.now(timezone.utc)
    next_hour = (now + timedelta(hours=1)).replace(minute=0, second=0, microsecond=0)
    slot_key = f'cron:scheduled-flows:{next_hour.strftime("%Y%m%d%H")}'
    try:
        claimed = _redis().set(slot_key, '1', nx=True, ex=2 * 3600)
    except Exception:
        logger.error("Could not claim schedule slot %s", slot_key, exc_info=True)
        return None
    if not claimed:
        return None
    job = _get_queue().enqueue_at(next_hour, run_scheduled_flows)
    logger.info("Scheduled flows booked for %s", next_hour.isoformat())
    return job
