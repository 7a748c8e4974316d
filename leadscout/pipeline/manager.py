"""
Pipeline Manager — campaign run orchestration.

Runs the three agent stages for one campaign run:
  DISCOVERY → ENRICHMENT → QUALIFICATION → finalize

Each step is checkpointed on the run (see durable.py), so a retried job
resumes after the last completed step instead of starting over. Discovery
failing aborts the run; enrichment or qualification failing degrades to a
zero result and the run still completes.
"""
import logging
from datetime import timedelta

from leadscout.config import LLM_MODEL, ProviderConfig
from leadscout.logging_config import run_context
from leadscout.pipeline.agent_config import get_job_timeout, get_requeue_delay, get_retries
from leadscout.pipeline.base import StageResult
from leadscout.pipeline.concurrency import get_limiter
from leadscout.pipeline.discovery import DiscoveryStage
from leadscout.pipeline.durable import DurableSteps
from leadscout.pipeline.enrichment import EnrichmentStage
from leadscout.pipeline.ledger import (
    RunLedger, RunStatus, CampaignStatus, RunCancelled, RunNotFound, CampaignNotFound,
)
from leadscout.pipeline.qualification import QualificationStage
from leadscout.services.activity import log_activity
from leadscout.services.notifications import notify_run_complete, notify_run_failed

logger = logging.getLogger('pipeline.manager')


# ── Lazy RQ queue (avoids import-time Redis connection) ──────────────────────

_queue = None

def _get_queue():
    global _queue
    if _queue is None:
        from leadscout.extensions import redis_client
        from rq import Queue
        _queue = Queue(connection=redis_client)
    return _queue


STAGE_CLASSES = {
    'discovery': DiscoveryStage,
    'enrichment': EnrichmentStage,
    'qualification': QualificationStage,
}


def _still_wanted(run_id) -> bool:
    """A run stopped or deleted while queued is not requeued again."""
    try:
        return RunLedger().is_active(run_id)
    except RunNotFound:
        return False


def _is_last_attempt() -> bool:
    """True outside RQ, or when RQ has no retries left for the current job."""
    from rq import get_current_job
    job = get_current_job()
    return job is None or not job.retries_left


# ── Pipeline runner (enqueued via RQ) ─────────────────────────────────────────

def run_pipeline(campaign_id: str, run_id: str, agent_ids: list = None):
    """
    RQ entry point for the campaign/started event.

    Holds one of the system-wide pipeline slots for the whole run; with none
    free, the job re-enqueues itself after a short delay and exits.
    """
    limiter = get_limiter('pipeline')
    if not limiter.acquire(run_id):
        if not _still_wanted(run_id):
            logger.info("Run %s stopped while waiting for a pipeline slot", run_id,
                        extra=run_context(run_id, campaign_id))
            return {'status': 'cancelled', 'runId': run_id}
        from rq import Retry
        delay = get_requeue_delay()
        logger.info("Run %s waiting for a pipeline slot, retrying in %ds", run_id, delay,
                    extra=run_context(run_id, campaign_id))
        _get_queue().enqueue_in(
            timedelta(seconds=delay), run_pipeline, campaign_id, run_id, agent_ids,
            job_timeout=get_job_timeout(), retry=Retry(max=get_retries('campaign/started')),
        )
        return {'status': 'requeued'}

    try:
        return execute_pipeline(campaign_id, run_id, agent_ids=agent_ids)
    finally:
        limiter.release(run_id)


def execute_pipeline(campaign_id: str, run_id: str, ledger: RunLedger = None, executor=None,
                     capabilities=None, agent_ids: list = None) -> dict:
    """
    Run (or resume) the pipeline for one run and return a summary dict.

    Unexpected errors are re-raised so RQ can retry the job; on the last
    attempt the run is marked error first and the campaign paused.
    """
    ledger = ledger or RunLedger()
    context = run_context(run_id, campaign_id)
    if agent_ids:
        logger.info("Run %s assigned agents %s", run_id, agent_ids, extra=context)
    try:
        return _execute(campaign_id, run_id, ledger, executor, capabilities)
    except RunCancelled as e:
        logger.info("Run %s stopped: %s", run_id, e, extra=context)
        return {'status': 'cancelled', 'runId': run_id}
    except Exception as e:
        logger.error("Run %s crashed: %s", run_id, e, exc_info=True, extra=context)
        if _is_last_attempt():
            _abort(ledger, campaign_id, run_id, f"Pipeline error: {e}")
        raise


def _execute(campaign_id, run_id, ledger, executor, capabilities) -> dict:
    steps = DurableSteps(run_id, ledger)

    # 1. Load campaign, mark run + campaign running
    try:
        campaign = steps.run('load-campaign', lambda: _load_and_start(ledger, campaign_id, run_id))
    except (CampaignNotFound, RunNotFound) as e:
        logger.error("Run %s: %s", run_id, e, extra=run_context(run_id, campaign_id))
        _fail_run(ledger, run_id, str(e))
        return {'status': RunStatus.ERROR.value, 'runId': run_id, 'error': str(e)}

    if executor is None:
        from leadscout.services.llm import get_executor
        executor = get_executor()
    if capabilities is None:
        from leadscout.tools import build_capabilities
        capabilities = build_capabilities(ProviderConfig.from_env())

    def stage(name):
        return STAGE_CLASSES[name](campaign, run_id, ledger, executor, capabilities, model=LLM_MODEL)

    # 2. Discovery: fatal on failure
    try:
        discovery = StageResult.from_dict(
            steps.run('run-discovery', lambda: stage('discovery').execute().to_dict())
        )
    except RunCancelled:
        raise
    except Exception as e:
        message = f"Discovery failed: {e}"
        _abort(ledger, campaign_id, run_id, message, campaign=campaign, stage='discovery')
        return {'status': RunStatus.ERROR.value, 'runId': run_id, 'error': message}

    lead_ids = discovery.lead_ids

    # 3 + 4. Enrichment and qualification: degrade to zero on failure
    if lead_ids:
        enrichment = StageResult.from_dict(
            steps.run('run-enrichment', lambda: _soft_stage(stage('enrichment'), lead_ids))
        )
        qualification = StageResult.from_dict(
            steps.run('run-qualification', lambda: _soft_stage(stage('qualification'), lead_ids))
        )
    else:
        logger.info("Run %s: no leads discovered, skipping enrichment and qualification", run_id,
                    extra=run_context(run_id, campaign_id))
        enrichment = qualification = StageResult()

    # 5. Finalize
    summary = steps.run('finalize', lambda: _finalize(ledger, campaign, run_id, discovery, enrichment, qualification))
    notify_run_complete(campaign, run_id, summary)
    return {'status': RunStatus.COMPLETED.value, 'runId': run_id, **summary}


def _load_and_start(ledger, campaign_id, run_id) -> dict:
    ledger.ensure_active(run_id)
    campaign = ledger.get_campaign(campaign_id).targeting()
    ledger.start(run_id)
    log_activity('runner', 'run_started', f"Pipeline started for {campaign['name']}", campaign_id=campaign_id,
                 status='running')
    logger.info("Run %s started for campaign %s", run_id, campaign_id, extra=run_context(run_id, campaign_id))
    return campaign


def _soft_stage(stage, lead_ids) -> dict:
    try:
        return stage.execute(lead_ids).to_dict()
    except RunCancelled:
        raise
    except Exception as e:
        logger.warning("Run %s: %s failed, continuing with zero results: %s", stage.run_id, stage.stage, e,
                       extra=run_context(stage.run_id, stage.campaign_id))
        return StageResult(error=f"{stage.stage} failed: {e}").to_dict()


def _finalize(ledger, campaign, run_id, discovery, enrichment, qualification) -> dict:
    stages = (discovery, enrichment, qualification)
    tokens = sum(s.tokens_used for s in stages)
    api_calls = sum(s.api_calls for s in stages)
    discovered = len(discovery.lead_ids)

    ledger.complete(
        run_id,
        leads_found=discovered,
        llm_tokens_used=tokens,
        api_calls_made=api_calls,
        metrics={
            'leads_discovered': discovered,
            'leads_enriched': enrichment.processed,
            'leads_qualified': qualification.processed,
            'api_calls': api_calls,
            'llm_tokens': tokens,
            'runs_count': 1,
        },
    )

    warnings = [s.error for s in (enrichment, qualification) if s.error]
    summary = {
        'discovered': discovered,
        'enriched': enrichment.processed,
        'qualified': qualification.processed,
        'tokens': tokens,
        'api_calls': api_calls,
        'warnings': warnings,
    }
    log_activity(
        'runner', 'run_completed',
        f"Pipeline complete: {discovered} discovered, {enrichment.processed} enriched, "
        f"{qualification.processed} qualified",
        campaign_id=campaign['id'],
    )
    logger.info("Run %s completed: discovered=%d enriched=%d qualified=%d tokens=%d",
                run_id, discovered, enrichment.processed, qualification.processed, tokens,
                extra=run_context(run_id, campaign['id']))
    return summary


# ── Failure bookkeeping ──────────────────────────────────────────────────────

def _fail_run(ledger, run_id, message):
    try:
        ledger.fail(run_id, message)
    except RunNotFound:
        logger.error("Run %s vanished before it could be marked error", run_id, extra=run_context(run_id))


def _abort(ledger, campaign_id, run_id, message, campaign=None, stage=None):
    """Mark the run error, move the campaign out of running, tell Slack."""
    _fail_run(ledger, run_id, message)
    try:
        ledger.set_campaign_status(campaign_id, CampaignStatus.PAUSED)
    except CampaignNotFound:
        pass
    except Exception:
        logger.error("Could not pause campaign %s after run %s failed", campaign_id, run_id, exc_info=True,
                     extra=run_context(run_id, campaign_id))
    log_activity('runner', 'run_failed', message[:500], campaign_id=campaign_id, status='error')
    notify_run_failed(campaign or {'id': campaign_id}, run_id, stage, message)
