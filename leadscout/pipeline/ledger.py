"""
Run Ledger — durable record of every campaign run and its tool-call steps.

Run lifecycle:
  pending → running → completed
  pending/running → cancelled   (stop requested)
  pending/running → error       (unrecoverable failure)

completed, cancelled and error are terminal. Every status write goes through
the transition tables below; anything else raises IllegalTransition.

Only the pipeline orchestrator, its stage executors and the trigger router
call into this module. Each method is its own unit of work (one session,
one commit).
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from leadscout.config import PIPELINE_STAGES
from leadscout.database import get_session
from leadscout.logging_config import run_context
from leadscout.models.agent_run import AgentRun, AgentStep
from leadscout.models.campaign import Campaign
from leadscout.services.metrics import apply_campaign_metrics

logger = logging.getLogger('pipeline.ledger')

# One step per stage
STEPS_TOTAL = len(PIPELINE_STAGES)


class RunStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    ERROR = 'error'


class CampaignStatus(str, Enum):
    DRAFT = 'draft'
    RUNNING = 'running'
    PAUSED = 'paused'
    COMPLETED = 'completed'


RUN_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.CANCELLED, RunStatus.ERROR},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.CANCELLED, RunStatus.ERROR},
    RunStatus.COMPLETED: set(),
    RunStatus.CANCELLED: set(),
    RunStatus.ERROR: set(),
}

CAMPAIGN_TRANSITIONS = {
    CampaignStatus.DRAFT: {CampaignStatus.RUNNING, CampaignStatus.PAUSED},
    CampaignStatus.RUNNING: {CampaignStatus.COMPLETED, CampaignStatus.PAUSED},
    CampaignStatus.PAUSED: {CampaignStatus.RUNNING},
    CampaignStatus.COMPLETED: {CampaignStatus.RUNNING, CampaignStatus.PAUSED},
}

ACTIVE_RUN_STATUSES = (RunStatus.PENDING.value, RunStatus.RUNNING.value)


# ── Errors ────────────────────────────────────────────────────────────────────

class IllegalTransition(Exception):
    """A status write that the transition table does not allow."""
    def __init__(self, kind, current, target):
        self.kind = kind
        self.current = current
        self.target = target
        super().__init__(f"Illegal {kind} transition: {current} → {target}")


class RunCancelled(Exception):
    """The run left the active states while work was still in flight."""
    def __init__(self, run_id, status):
        self.run_id = run_id
        self.status = status
        super().__init__(f"Run {run_id} is {status}; refusing further writes")


class RunNotFound(Exception):
    def __init__(self, run_id):
        self.run_id = run_id
        super().__init__(f"Run {run_id} not found")


class CampaignNotFound(Exception):
    def __init__(self, campaign_id):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign {campaign_id} not found")


def check_run_transition(current, target) -> RunStatus:
    current, target = RunStatus(current), RunStatus(target)
    if target not in RUN_TRANSITIONS[current]:
        raise IllegalTransition('run', current.value, target.value)
    return target


def check_campaign_transition(current, target) -> Optional[CampaignStatus]:
    """Returns the target, or None for a same-state write (no-op)."""
    current, target = CampaignStatus(current), CampaignStatus(target)
    if current == target:
        return None
    if target not in CAMPAIGN_TRANSITIONS[current]:
        raise IllegalTransition('campaign', current.value, target.value)
    return target


def _now():
    return datetime.now(timezone.utc)


class RunLedger:
    """Reads and writes runs, steps and campaign status for the pipeline."""

    def __init__(self, session_factory=get_session):
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _load_run(session, run_id) -> AgentRun:
        run = session.get(AgentRun, run_id)
        if run is None:
            raise RunNotFound(run_id)
        return run

    @staticmethod
    def _load_campaign(session, campaign_id) -> Campaign:
        campaign = session.get(Campaign, campaign_id)
        if campaign is None:
            raise CampaignNotFound(campaign_id)
        return campaign

    @staticmethod
    def _set_run_status(run, target):
        run.status = check_run_transition(run.status, target).value

    # ── Campaign ─────────────────────────────────────────────────────────

    def get_campaign(self, campaign_id) -> Campaign:
        with self._session() as session:
            return self._load_campaign(session, campaign_id)

    def set_campaign_status(self, campaign_id, target, session=None):
        """Move a campaign through its transition table; same-state writes are no-ops."""
        if session is None:
            with self._session() as s:
                return self.set_campaign_status(campaign_id, target, session=s)
        campaign = self._load_campaign(session, campaign_id)
        new_status = check_campaign_transition(campaign.status, target)
        if new_status is not None:
            logger.info("Campaign %s: %s → %s", campaign_id, campaign.status, new_status.value,
                        extra=run_context(campaign_id=campaign_id))
            campaign.status = new_status.value
        return campaign

    # ── Run lifecycle ────────────────────────────────────────────────────

    def create_run(self, campaign_id, agent_type='full_pipeline') -> AgentRun:
        with self._session() as session:
            self._load_campaign(session, campaign_id)
            run = AgentRun(
                campaign_id=campaign_id,
                agent_type=agent_type,
                status=RunStatus.PENDING.value,
                steps_total=STEPS_TOTAL,
                run_metadata={},
            )
            session.add(run)
            session.flush()
            logger.info("Run %s created for campaign %s", run.id, campaign_id, extra=run_context(run.id, campaign_id))
            return run

    def get_run(self, run_id) -> AgentRun:
        with self._session() as session:
            return self._load_run(session, run_id)

    def start(self, run_id) -> AgentRun:
        """pending → running; the owning campaign moves to running in the same commit."""
        with self._session() as session:
            run = self._load_run(session, run_id)
            self._set_run_status(run, RunStatus.RUNNING)
            run.started_at = _now()
            run.steps_total = STEPS_TOTAL
            self.set_campaign_status(run.campaign_id, CampaignStatus.RUNNING, session=session)
            return run

    def complete(self, run_id, leads_found=0, llm_tokens_used=0, api_calls_made=0, metrics=None) -> AgentRun:
        """
        running → completed, in one commit with the campaign side:
        campaign → completed, total_runs + 1, last_run_at, leads_found + this
        run's leads, and the day's campaign_metrics increments. A run already
        completed is returned untouched so a replayed finalize counts once; a
        run cancelled or failed in the meantime raises RunCancelled.
        """
        for attempt in range(2):
            try:
                with self._session() as session:
                    run = self._load_run(session, run_id)
                    if run.status == RunStatus.COMPLETED.value:
                        return run
                    if run.status not in ACTIVE_RUN_STATUSES:
                        raise RunCancelled(run_id, run.status)
                    self._set_run_status(run, RunStatus.COMPLETED)
                    now = _now()
                    run.completed_at = now
                    run.leads_found = leads_found
                    run.llm_tokens_used = llm_tokens_used
                    run.api_calls_made = api_calls_made

                    campaign = self.set_campaign_status(run.campaign_id, CampaignStatus.COMPLETED, session=session)
                    campaign.total_runs = (campaign.total_runs or 0) + 1
                    campaign.last_run_at = now
                    campaign.leads_found = (campaign.leads_found or 0) + leads_found

                    if metrics:
                        apply_campaign_metrics(session, run.campaign_id, **metrics)
                    return run
            except IntegrityError:
                # Day row inserted concurrently; the retry updates it instead
                if attempt:
                    raise
                logger.info("Metrics row for campaign collided while completing run %s, retrying", run_id,
                            extra=run_context(run_id))

    def fail(self, run_id, message) -> Optional[AgentRun]:
        """Mark the run error. A run that already reached a terminal state is left alone."""
        with self._session() as session:
            run = self._load_run(session, run_id)
            if run.status not in ACTIVE_RUN_STATUSES:
                logger.info("Run %s already %s, not marking error", run_id, run.status,
                            extra=run_context(run_id, run.campaign_id))
                return None
            self._set_run_status(run, RunStatus.ERROR)
            run.completed_at = _now()
            run.error_message = str(message)[:2000]
            return run

    def cancel_active(self, campaign_id) -> List[str]:
        """Cancel every pending or running run of the campaign; returns their ids."""
        with self._session() as session:
            runs = session.query(AgentRun).filter(
                AgentRun.campaign_id == campaign_id,
                AgentRun.status.in_(ACTIVE_RUN_STATUSES),
            ).all()
            now = _now()
            for run in runs:
                self._set_run_status(run, RunStatus.CANCELLED)
                run.completed_at = now
            return [run.id for run in runs]

    def has_active_run(self, campaign_id) -> bool:
        with self._session() as session:
            return session.query(AgentRun.id).filter(
                AgentRun.campaign_id == campaign_id,
                AgentRun.status.in_(ACTIVE_RUN_STATUSES),
            ).first() is not None

    def is_active(self, run_id) -> bool:
        with self._session() as session:
            return self._load_run(session, run_id).status in ACTIVE_RUN_STATUSES

    def ensure_active(self, run_id, session=None):
        """Raise RunCancelled unless the run is still pending or running."""
        if session is None:
            with self._session() as s:
                return self.ensure_active(run_id, session=s)
        run = self._load_run(session, run_id)
        if run.status not in ACTIVE_RUN_STATUSES:
            raise RunCancelled(run_id, run.status)
        return run

    # ── Progress + accounting ────────────────────────────────────────────

    def update_progress(self, run_id, steps_completed=None, leads_found=None):
        with self._session() as session:
            run = self.ensure_active(run_id, session=session)
            if steps_completed is not None:
                run.steps_completed = steps_completed
            if leads_found is not None:
                run.leads_found = leads_found

    def add_usage(self, run_id, tokens=0, api_calls=0):
        with self._session() as session:
            run = self._load_run(session, run_id)
            run.llm_tokens_used = (run.llm_tokens_used or 0) + tokens
            run.api_calls_made = (run.api_calls_made or 0) + api_calls

    # ── Steps ────────────────────────────────────────────────────────────

    def record_step(self, run_id, tool_name, tool_input=None, tool_output=None, status='completed',
                    duration_ms=None, error_message=None, stage=None, attempts=3) -> int:
        """
        Append one tool-call step and return its step_number.

        Numbers are max(existing) + 1 within the run, so they stay gapless
        across stages and across worker restarts. A concurrent writer taking
        the same number trips the (run_id, step_number) constraint; retry.
        """
        for attempt in range(attempts):
            try:
                with self._session() as session:
                    run = self.ensure_active(run_id, session=session)
                    last = session.query(func.max(AgentStep.step_number)).filter(
                        AgentStep.run_id == run_id,
                    ).scalar() or 0
                    step = AgentStep(
                        run_id=run_id,
                        campaign_id=run.campaign_id,
                        step_number=last + 1,
                        stage=stage,
                        tool_name=tool_name,
                        tool_input=tool_input,
                        tool_output=tool_output,
                        status=status,
                        duration_ms=duration_ms,
                        error_message=error_message,
                    )
                    session.add(step)
                    session.flush()
                    return step.step_number
            except IntegrityError:
                if attempt == attempts - 1:
                    raise
                logger.warning("Step number collision on run %s, retrying", run_id, extra=run_context(run_id))

    def step_count(self, run_id) -> int:
        with self._session() as session:
            return session.query(func.count(AgentStep.id)).filter(AgentStep.run_id == run_id).scalar() or 0

    def list_steps(self, run_id, after=0) -> List[AgentStep]:
        with self._session() as session:
            return session.query(AgentStep).filter(
                AgentStep.run_id == run_id,
                AgentStep.step_number > after,
            ).order_by(AgentStep.step_number).all()

    # ── Queries ──────────────────────────────────────────────────────────

    def latest_run(self, campaign_id) -> Optional[AgentRun]:
        with self._session() as session:
            return session.query(AgentRun).filter(
                AgentRun.campaign_id == campaign_id,
            ).order_by(AgentRun.created_at.desc(), AgentRun.id.desc()).first()

    def list_runs(self, campaign_id, limit=20) -> List[AgentRun]:
        """Newest first."""
        with self._session() as session:
            return session.query(AgentRun).filter(
                AgentRun.campaign_id == campaign_id,
            ).order_by(AgentRun.created_at.desc(), AgentRun.id.desc()).limit(limit).all()

    # ── Checkpoints ──────────────────────────────────────────────────────

    def get_checkpoints(self, run_id) -> Dict[str, object]:
        with self._session() as session:
            run = self._load_run(session, run_id)
            return dict((run.run_metadata or {}).get('checkpoints') or {})

    def save_checkpoint(self, run_id, name, output):
        with self._session() as session:
            run = self._load_run(session, run_id)
            metadata = dict(run.run_metadata or {})
            checkpoints = dict(metadata.get('checkpoints') or {})
            checkpoints[name] = output
            metadata['checkpoints'] = checkpoints
            # Reassign so the JSON column is flagged dirty
            run.run_metadata = metadata
