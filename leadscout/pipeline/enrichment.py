"""
Enrichment stage — add contact data and evidence to freshly discovered leads.

Only leads handed over by discovery may be updated. updateLead merges
signals into the lead's existing ones (order kept, no duplicates) and
overwrites the contact fields it is given.
"""
import logging

from leadscout.models.discovered_lead import DiscoveredLead
from leadscout.pipeline.base import StageExecutor, StageResult
from leadscout.pipeline.tools import (
    ToolSpec, EnrichPersonInput, VerifyEmailInput, ReadCompanyWebsiteInput,
    UpdateLeadInput, merge_signals,
)
from leadscout.services.activity import log_activity
from leadscout.tools.base import ToolResult

logger = logging.getLogger('pipeline.enrichment')

SYSTEM_PROMPT = """You are a lead enrichment agent. For each lead below:
1. Enrich the profile with additional data (company details, social profiles, skills).
2. Verify the email address if there is one.
3. Read the company website when it adds useful context.
Then call updateLead with what you learned. Signals you pass are added to the lead's existing signals.

LEADS TO ENRICH:
{leads}

If an enrichment tool is not configured, note it and move on."""

UPDATABLE_FIELDS = ('email', 'linkedin_url', 'position', 'company', 'ai_summary')


def format_lead(index, lead):
    return (f"{index}. ID: {lead['id']}\n"
            f"   {lead['name']} — {lead.get('position') or 'unknown role'} at {lead.get('company') or 'unknown company'}"
            f" (email: {lead.get('email') or 'unknown'})")


class EnrichmentStage(StageExecutor):
    stage = 'enrichment'
    provider_tools = frozenset({'enrichPerson', 'verifyEmail', 'readCompanyWebsite'})

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.allowed_ids = set()
        self.enriched_ids = []

    def tool_specs(self):
        return [
            ToolSpec('enrichPerson', 'Enrich a person profile from People Data Labs.',
                     EnrichPersonInput, self.enrich_person),
            ToolSpec('verifyEmail', 'Check whether an email address is valid and deliverable.',
                     VerifyEmailInput, self.verify_email),
            ToolSpec('readCompanyWebsite', 'Read a company web page as plain text.',
                     ReadCompanyWebsiteInput, self.read_company_website),
            ToolSpec('updateLead', 'Update a lead with enriched information.',
                     UpdateLeadInput, self.update_lead),
        ]

    # ── Tool handlers ────────────────────────────────────────────────────

    def enrich_person(self, args: EnrichPersonInput):
        return self.capabilities.enrich_person(
            email=args.email, first_name=args.first_name, last_name=args.last_name,
            company=args.company, linkedin_url=args.linkedin_url,
        )

    def verify_email(self, args: VerifyEmailInput):
        return self.capabilities.verify_email(args.email)

    def read_company_website(self, args: ReadCompanyWebsiteInput):
        return self.capabilities.read_url(args.url)

    def update_lead(self, args: UpdateLeadInput):
        if args.lead_id not in self.allowed_ids:
            return ToolResult(error=f"Lead {args.lead_id} is not one of the leads to enrich")

        with self.lead_write() as session:
            lead = session.get(DiscoveredLead, args.lead_id)
            if lead is None:
                return ToolResult(error=f"Lead {args.lead_id} not found")
            for name in UPDATABLE_FIELDS:
                value = getattr(args, name)
                if value is not None:
                    setattr(lead, name, value)
            if args.signals is not None:
                lead.signals = merge_signals(lead.signals, args.signals)
            log_activity('enrichment', 'lead_enriched', f"Enriched {lead.name} with new data",
                         campaign_id=self.campaign_id, session=session)

        if args.lead_id not in self.enriched_ids:
            self.enriched_ids.append(args.lead_id)
        return f"Lead {args.lead_id} updated successfully"

    # ── Stage ────────────────────────────────────────────────────────────

    def describe_result(self, result: StageResult):
        return f"Enriched {result.processed} leads in {result.rounds} rounds"

    def run(self, lead_ids) -> StageResult:
        leads = self.load_leads(lead_ids)
        if not leads:
            return StageResult()
        self.allowed_ids = {lead['id'] for lead in leads}
        prompt = SYSTEM_PROMPT.format(leads='\n'.join(format_lead(i, l) for i, l in enumerate(leads, 1)))
        agent_result = self.run_agent(prompt)
        return self.build_result(agent_result, self.enriched_ids, len(self.enriched_ids))
