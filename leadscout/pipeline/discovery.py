"""
Discovery stage — find real people matching the campaign's targeting.

The agent searches companies and people, optionally scrapes websites and
looks up emails, and calls saveLead for every match. Each saveLead is an
immediate insert (status pending_review) with its activity entry, so the
leads found so far survive a crash later in the loop.
"""
import logging

from leadscout.models.discovered_lead import DiscoveredLead
from leadscout.pipeline.base import StageExecutor, StageResult
from leadscout.pipeline.tools import (
    ToolSpec, SearchCompaniesInput, SearchPeopleInput, ScrapeWebsiteInput,
    FindEmailInput, SaveLeadInput,
)
from leadscout.services.activity import log_activity

logger = logging.getLogger('pipeline.discovery')

SYSTEM_PROMPT = """You are a B2B lead discovery agent. Find REAL people who match the campaign below.

CAMPAIGN: {name}
{targeting}
- Max Leads to Save: {max_leads}

HOW TO WORK:
1. Search for companies that match the industry, size and region.
2. For promising companies, search for people holding the target roles.
3. Look up email addresses for the strongest matches.
4. Scrape a company website when search data is thin.
5. Call saveLead once per qualified person, with an ai_summary saying why they fit
   and signals such as "Matches target role" or "Company in target industry".

Prefer quality over quantity. If a tool reports a missing API key, stop using it and work with the others."""


class DiscoveryStage(StageExecutor):
    stage = 'discovery'
    needs_leads = False
    provider_tools = frozenset({'searchCompanies', 'searchPeople', 'scrapeWebsite', 'findEmail'})

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.lead_ids = []

    def tool_specs(self):
        return [
            ToolSpec('searchCompanies', 'Search companies by industry keyword, location and employee range.',
                     SearchCompaniesInput, self.search_companies),
            ToolSpec('searchPeople', 'Search people by job title, optionally within one company domain.',
                     SearchPeopleInput, self.search_people),
            ToolSpec('scrapeWebsite', 'Scrape a company page (about, team) for extra context.',
                     ScrapeWebsiteInput, self.scrape_website),
            ToolSpec('findEmail', 'Find the email address of a person at a company domain.',
                     FindEmailInput, self.find_email),
            ToolSpec('saveLead', 'Save a qualified lead. Call once per person.',
                     SaveLeadInput, self.save_lead),
        ]

    # ── Tool handlers ────────────────────────────────────────────────────

    def search_companies(self, args: SearchCompaniesInput):
        return self.capabilities.search_companies(args.query, location=args.location,
                                                  employee_range=args.employee_range)

    def search_people(self, args: SearchPeopleInput):
        return self.capabilities.search_people(titles=list(args.titles), domain=args.domain)

    def scrape_website(self, args: ScrapeWebsiteInput):
        return self.capabilities.scrape_website(args.url)

    def find_email(self, args: FindEmailInput):
        return self.capabilities.find_email(args.first_name, args.last_name, args.domain)

    def save_lead(self, args: SaveLeadInput):
        max_leads = self.campaign.get('max_leads_per_run') or 50
        if len(self.lead_ids) >= max_leads:
            return f"Lead limit of {max_leads} reached for this run. Do not save more leads."

        with self.lead_write() as session:
            lead = DiscoveredLead(
                campaign_id=self.campaign_id,
                name=args.name,
                company=args.company,
                position=args.position,
                email=args.email or None,
                linkedin_url=args.linkedin_url or None,
                confidence_score=args.confidence_score,
                discovery_source=args.discovery_source or '',
                ai_summary=args.ai_summary or '',
                signals=list(args.signals),
                status='pending_review',
            )
            session.add(lead)
            session.flush()
            lead_id = lead.id
            log_activity(
                'discovery', 'lead_discovered',
                f"Found {args.name} ({args.position or 'unknown role'}) at {args.company or 'unknown company'} "
                f"— confidence: {args.confidence_score}%",
                campaign_id=self.campaign_id, session=session,
            )

        self.lead_ids.append(lead_id)
        logger.info("Run %s: saved lead %s (%s)", self.run_id, lead_id, args.name, extra=self.log_context)
        return f"Lead saved: {args.name} at {args.company or 'unknown company'} (confidence: {args.confidence_score}%)"

    # ── Stage ────────────────────────────────────────────────────────────

    def progress_leads_found(self):
        return len(self.lead_ids)

    def describe_start(self, lead_ids):
        return f"Searching for leads: {self.campaign.get('target_industry') or 'any industry'}"

    def describe_result(self, result: StageResult):
        return f"Discovered {result.processed} leads in {result.rounds} rounds"

    def system_prompt(self):
        return SYSTEM_PROMPT.format(
            name=self.campaign.get('name', ''),
            targeting=self.targeting_lines(),
            max_leads=self.campaign.get('max_leads_per_run') or 50,
        )

    def run(self, lead_ids=None) -> StageResult:
        agent_result = self.run_agent(self.system_prompt())
        return self.build_result(agent_result, self.lead_ids, len(self.lead_ids))
