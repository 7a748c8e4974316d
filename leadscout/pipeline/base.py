"""
Pipeline stage contracts.

Every agent stage implements StageExecutor.run() and returns a StageResult.
The orchestrator only calls execute(), which wraps run() with the stage's
started / completed / error activity entries.

Inside a stage, each tool call the model makes is appended to the run's
step log, and after each round the run's progress counters and usage totals
are refreshed so observers see the run move mid-flight.
"""
import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from leadscout.database import get_session
from leadscout.logging_config import run_context
from leadscout.models.discovered_lead import DiscoveredLead
from leadscout.pipeline.agent_config import get_max_rounds, get_model
from leadscout.pipeline.ledger import RunCancelled
from leadscout.services.activity import log_activity

logger = logging.getLogger('pipeline.base')

# Longest tool output kept verbatim in agent_steps.tool_output
MAX_STORED_OUTPUT = 4000


@dataclass
class StageResult:
    """Uniform output from every agent stage."""
    lead_ids: List[str] = field(default_factory=list)
    processed: int = 0
    tokens_used: int = 0
    rounds: int = 0
    api_calls: int = 0
    tool_errors: List[str] = field(default_factory=list)
    # Set when the stage itself failed and was degraded to zero
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'StageResult':
        data = data or {}
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


def _stored_output(output: str):
    """Tool output as stored on the step row: parsed JSON when possible, capped in size."""
    if output is None:
        return None
    if len(output) > MAX_STORED_OUTPUT:
        return {'truncated': True, 'preview': output[:MAX_STORED_OUTPUT]}
    try:
        parsed = json.loads(output)
    except ValueError:
        return {'message': output}
    return parsed if isinstance(parsed, dict) else {'result': parsed}


class StageExecutor(ABC):
    """
    Base class for the three agent stages.

    Args:
        campaign:     targeting snapshot (Campaign.targeting()).
        run_id:       the run this stage writes steps for.
        ledger:       RunLedger.
        executor:     AgentExecutor running the tool loop.
        capabilities: Capabilities bundle of provider adapters.
    """
    stage: str = ''
    # Stages fed by discovery do nothing without leads
    needs_leads: bool = True
    # Tools that reach an external provider (counted as API calls)
    provider_tools: frozenset = frozenset()

    def __init__(self, campaign: Dict[str, Any], run_id: str, ledger, executor, capabilities,
                 model: str = None, max_rounds: int = None):
        self.campaign = campaign
        self.campaign_id = campaign['id']
        self.run_id = run_id
        self.ledger = ledger
        self.executor = executor
        self.capabilities = capabilities
        self.model = get_model(model)
        self.max_rounds = max_rounds or get_max_rounds(self.stage)
        self.api_calls = 0
        self.tool_errors: List[str] = []
        # Usage already pushed to the run row, so each round adds only its delta
        self._tokens_reported = 0
        self._calls_reported = 0

    @property
    def log_context(self) -> Dict[str, Any]:
        return run_context(self.run_id, self.campaign_id)

    # ── Template ─────────────────────────────────────────────────────────

    def execute(self, lead_ids: List[str] = None) -> StageResult:
        lead_ids = list(lead_ids or [])
        if self.needs_leads and not lead_ids:
            logger.info("Run %s: %s skipped, no leads", self.run_id, self.stage, extra=self.log_context)
            return StageResult()

        log_activity(self.stage, f'{self.stage}_started', self.describe_start(lead_ids), campaign_id=self.campaign_id,
                     status='running')
        try:
            result = self.run(lead_ids)
        except RunCancelled:
            logger.info("Run %s cancelled during %s", self.run_id, self.stage, extra=self.log_context)
            raise
        except Exception as e:
            logger.error("Run %s: %s failed: %s", self.run_id, self.stage, e, exc_info=True, extra=self.log_context)
            log_activity(self.stage, f'{self.stage}_error', str(e)[:500], campaign_id=self.campaign_id, status='error')
            raise

        log_activity(self.stage, f'{self.stage}_completed', self.describe_result(result), campaign_id=self.campaign_id)
        logger.info("Run %s: %s done: processed=%d rounds=%d tokens=%d",
                    self.run_id, self.stage, result.processed, result.rounds, result.tokens_used,
                    extra=self.log_context)
        return result

    @abstractmethod
    def run(self, lead_ids: List[str]) -> StageResult:
        ...

    @abstractmethod
    def tool_specs(self) -> list:
        ...

    def describe_start(self, lead_ids) -> str:
        return f"Processing {len(lead_ids)} leads"

    def describe_result(self, result: StageResult) -> str:
        return f"Processed {result.processed} leads in {result.rounds} rounds"

    # ── Agent loop plumbing ──────────────────────────────────────────────

    def run_agent(self, system_prompt: str):
        return self.executor.run(
            self.model,
            system_prompt,
            self.tool_specs(),
            self.max_rounds,
            on_tool_call=self.record_tool_call,
            on_round_finish=self.round_finished,
        )

    def record_tool_call(self, record):
        if record.name in self.provider_tools:
            self.api_calls += 1
        if record.error:
            self.tool_errors.append(f"{record.name}: {record.error}")
        self.ledger.record_step(
            self.run_id,
            record.name,
            tool_input=record.arguments,
            tool_output=_stored_output(record.output),
            status='error' if record.error else 'completed',
            duration_ms=record.duration_ms,
            error_message=record.error,
            stage=self.stage,
        )

    def progress_leads_found(self) -> Optional[int]:
        """Lead count to publish on the run after each round; None leaves it alone."""
        return None

    def round_finished(self, round_number, records, total_tokens):
        self.ledger.update_progress(
            self.run_id,
            steps_completed=self.ledger.step_count(self.run_id),
            leads_found=self.progress_leads_found(),
        )
        self.ledger.add_usage(self.run_id, tokens=total_tokens - self._tokens_reported,
                              api_calls=self.api_calls - self._calls_reported)
        self._tokens_reported = total_tokens
        self._calls_reported = self.api_calls

    def build_result(self, agent_result, lead_ids, processed) -> StageResult:
        return StageResult(
            lead_ids=list(lead_ids),
            processed=processed,
            tokens_used=agent_result.total_tokens,
            rounds=agent_result.rounds,
            api_calls=self.api_calls,
            tool_errors=list(self.tool_errors),
        )

    # ── Lead helpers ─────────────────────────────────────────────────────

    @contextmanager
    def lead_write(self):
        """Session for one durable lead write; refuses to open once the run is no longer active."""
        session = get_session()
        try:
            self.ledger.ensure_active(self.run_id, session=session)
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def load_leads(self, lead_ids) -> List[Dict[str, Any]]:
        """Leads of this campaign among lead_ids, as dicts, in the given order."""
        session = get_session()
        try:
            rows = session.query(DiscoveredLead).filter(
                DiscoveredLead.id.in_(lead_ids),
                DiscoveredLead.campaign_id == self.campaign_id,
            ).all()
            by_id = {row.id: row.to_dict() for row in rows}
        finally:
            session.close()
        return [by_id[i] for i in lead_ids if i in by_id]

    def targeting_lines(self) -> str:
        c = self.campaign
        return '\n'.join([
            f"- Industry: {c.get('target_industry') or 'any'}",
            f"- Target Roles: {', '.join(c.get('target_roles') or []) or 'any'}",
            f"- Company Size: {c.get('target_company_size') or 'any'}",
            f"- Region: {c.get('target_region') or 'any'}",
            f"- Search Criteria: {c.get('search_criteria') or 'none'}",
            f"- Minimum Confidence: {c.get('confidence_threshold', 70)}%",
        ])
