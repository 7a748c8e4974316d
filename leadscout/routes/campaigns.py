"""
Campaign routes — start/stop, run status, step log, live SSE, provider test.
"""
import json
import logging
import time

from flask import Blueprint, request, jsonify, Response, stream_with_context

from leadscout.database import get_session
from leadscout.models.discovered_lead import DiscoveredLead
from leadscout.pipeline.ledger import RunLedger, RunStatus, CampaignNotFound, RunNotFound
from leadscout.pipeline.triggers import start_campaign, stop_campaign, CampaignAlreadyRunning

logger = logging.getLogger('routes.campaigns')

bp = Blueprint('campaigns', __name__)

# Seconds between ledger polls in the live stream
LIVE_POLL_INTERVAL = 2

TERMINAL_RUN_STATUSES = (RunStatus.COMPLETED.value, RunStatus.CANCELLED.value, RunStatus.ERROR.value)


@bp.route('/campaigns/<campaign_id>/start', methods=['POST'])
def start(campaign_id):
    """Create a pending run and hand it to the pipeline worker."""
    try:
        return jsonify(start_campaign(campaign_id)), 202
    except CampaignNotFound:
        return jsonify({'success': False, 'error': 'Campaign not found'}), 404
    except CampaignAlreadyRunning:
        return jsonify({'success': False, 'error': 'Campaign is already running'}), 409


@bp.route('/campaigns/<campaign_id>/stop', methods=['POST'])
def stop(campaign_id):
    """Pause the campaign and cancel its active runs; no-op when idle."""
    try:
        return jsonify(stop_campaign(campaign_id))
    except CampaignNotFound:
        return jsonify({'success': False, 'error': 'Campaign not found'}), 404


@bp.route('/campaigns/<campaign_id>/status')
def status(campaign_id):
    ledger = RunLedger()
    try:
        ledger.get_campaign(campaign_id)
    except CampaignNotFound:
        return jsonify({'error': 'Campaign not found'}), 404

    run = ledger.latest_run(campaign_id)
    return jsonify({
        'campaignId': campaign_id,
        'latestRun': run.to_dict() if run else None,
        'totalSteps': ledger.step_count(run.id) if run else 0,
    })


@bp.route('/campaigns/<campaign_id>/runs')
def runs(campaign_id):
    """Runs of a campaign, newest first."""
    limit = request.args.get('limit', 20, type=int)
    return jsonify({'runs': [run.to_dict() for run in RunLedger().list_runs(campaign_id, limit=limit)]})


@bp.route('/campaigns/<campaign_id>/runs/<run_id>/steps')
def steps(campaign_id, run_id):
    """Tool-call log of one run, in step order."""
    ledger = RunLedger()
    try:
        run = ledger.get_run(run_id)
    except RunNotFound:
        return jsonify({'error': 'Run not found'}), 404
    if run.campaign_id != campaign_id:
        return jsonify({'error': 'Run not found'}), 404

    after = request.args.get('after', 0, type=int)
    return jsonify({'runId': run_id, 'steps': [s.to_dict() for s in ledger.list_steps(run_id, after=after)]})


@bp.route('/campaigns/<campaign_id>/test', methods=['POST'])
def test_providers(campaign_id):
    """Probe every data provider once and report which are usable."""
    from leadscout.config import ProviderConfig
    from leadscout.tools import build_capabilities, check_capabilities

    report = check_capabilities(build_capabilities(ProviderConfig.from_env()))
    return jsonify({
        'campaignId': campaign_id,
        'success': all(entry['ok'] for entry in report.values()),
        'providers': report,
    })


# ── Live progress (SSE) ──────────────────────────────────────────────────────

def _sse(event, payload):
    return f"event: {event}\ndata: {json.dumps(payload, default=str)}\n\n"


def _new_leads(campaign_id, seen):
    session = get_session()
    try:
        query = session.query(DiscoveredLead).filter(DiscoveredLead.campaign_id == campaign_id)
        if seen:
            query = query.filter(DiscoveredLead.id.notin_(seen))
        return [lead.to_dict() for lead in query.order_by(DiscoveredLead.discovered_at).all()]
    finally:
        session.close()


def live_events(campaign_id, ledger, poll_interval=LIVE_POLL_INTERVAL, max_polls=None):
    """
    Yield SSE frames for the campaign's latest run until it is terminal.

    run  — whenever status or progress counters change
    step — each new tool-call step
    lead — each lead inserted for the campaign since the stream opened
    """
    last_state = None
    last_step = 0
    seen_leads = {lead['id'] for lead in _new_leads(campaign_id, ())}
    polls = 0

    while True:
        run = ledger.latest_run(campaign_id)
        if run is None:
            yield _sse('run', None)
            return

        run_dict = run.to_dict()
        state = (run_dict['status'], run_dict['steps_completed'], run_dict['leads_found'],
                 run_dict['llm_tokens_used'])
        if state != last_state:
            last_state = state
            yield _sse('run', run_dict)

        for step in ledger.list_steps(run.id, after=last_step):
            last_step = step.step_number
            yield _sse('step', step.to_dict())

        for lead in _new_leads(campaign_id, seen_leads):
            seen_leads.add(lead['id'])
            yield _sse('lead', lead)

        if run_dict['status'] in TERMINAL_RUN_STATUSES:
            return

        polls += 1
        if max_polls is not None and polls >= max_polls:
            return
        time.sleep(poll_interval)


@bp.route('/campaigns/<campaign_id>/live')
def live(campaign_id):
    ledger = RunLedger()
    try:
        ledger.get_campaign(campaign_id)
    except CampaignNotFound:
        return jsonify({'error': 'Campaign not found'}), 404

    return Response(
        stream_with_context(live_events(campaign_id, ledger)),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
