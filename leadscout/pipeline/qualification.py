"""
Qualification stage — score each lead against the campaign's ICP.

scoreLead replaces the lead's confidence_score, ai_summary and signals
outright; it is the final word on the lead for this run.
"""
import logging

from leadscout.models.discovered_lead import DiscoveredLead
from leadscout.pipeline.base import StageExecutor, StageResult
from leadscout.pipeline.tools import ToolSpec, ScoreLeadInput
from leadscout.services.activity import log_activity
from leadscout.tools.base import ToolResult

logger = logging.getLogger('pipeline.qualification')

SYSTEM_PROMPT = """You are a lead qualification agent. Judge each lead below against the Ideal Customer Profile.

ICP CRITERIA:
{targeting}

LEADS TO QUALIFY:
{leads}

For every lead: decide how well it fits the ICP, give a confidence_score (0-100),
write a 2-3 sentence ai_summary explaining the score, list the qualifying signals,
and call scoreLead."""


def format_lead(index, lead):
    return '\n'.join([
        f"{index}. ID: {lead['id']}",
        f"   Name: {lead['name']}",
        f"   Position: {lead.get('position') or 'unknown'}",
        f"   Company: {lead.get('company') or 'unknown'}",
        f"   Email: {lead.get('email') or 'unknown'}",
        f"   Current Score: {lead.get('confidence_score', 0)}",
        f"   Signals: {', '.join(lead.get('signals') or [])}",
        f"   Current Summary: {lead.get('ai_summary') or 'none'}",
    ])


class QualificationStage(StageExecutor):
    stage = 'qualification'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.allowed_ids = set()
        self.scored_ids = []

    def tool_specs(self):
        return [
            ToolSpec('scoreLead', 'Score and qualify one lead. Call this for every lead in the list.',
                     ScoreLeadInput, self.score_lead),
        ]

    def score_lead(self, args: ScoreLeadInput):
        if args.lead_id not in self.allowed_ids:
            return ToolResult(error=f"Lead {args.lead_id} is not one of the leads to qualify")

        with self.lead_write() as session:
            lead = session.get(DiscoveredLead, args.lead_id)
            if lead is None:
                return ToolResult(error=f"Lead {args.lead_id} not found")
            lead.confidence_score = args.confidence_score
            lead.ai_summary = args.ai_summary
            lead.signals = list(args.signals)
            log_activity('qualification', 'lead_qualified', f"Scored {lead.name} at {args.confidence_score}%",
                         campaign_id=self.campaign_id, session=session)

        if args.lead_id not in self.scored_ids:
            self.scored_ids.append(args.lead_id)
        return f"Lead {args.lead_id} scored: {args.confidence_score}% — {args.ai_summary[:100]}"

    def describe_result(self, result: StageResult):
        return f"Qualified {result.processed} leads in {result.rounds} rounds"

    def run(self, lead_ids) -> StageResult:
        leads = self.load_leads(lead_ids)
        if not leads:
            return StageResult()
        self.allowed_ids = {lead['id'] for lead in leads}
        prompt = SYSTEM_PROMPT.format(
            targeting=self.targeting_lines(),
            leads='\n\n'.join(format_lead(i, l) for i, l in enumerate(leads, 1)),
        )
        agent_result = self.run_agent(prompt)
        return self.build_result(agent_result, self.scored_ids, len(self.scored_ids))
