"""
Mock agent executors — canned tool-calling sessions, no LLM involved.

MockAgentExecutor is activated with MOCK_PIPELINE=1: every stage runs its
real tool handlers against a fixed script, so the ledger, steps, leads and
activities fill up exactly as in a live run. ScriptedAgentExecutor replays
an explicit list of rounds and is what the tests drive stages with.
"""
import logging
import random
import re
import time

from leadscout.services.llm import AgentExecutor, AgentResult

logger = logging.getLogger('pipeline.mock')


MOCK_LEADS = [
    {'name': 'Maya Chen', 'position': 'VP Engineering', 'company': 'Northwind Analytics', 'email': 'maya@northwind.io'},
    {'name': 'Jorge Ramirez', 'position': 'CTO', 'company': 'Fieldline Robotics', 'email': None},
    {'name': 'Priya Sharma', 'position': 'Head of Data', 'company': 'Lumen Health', 'email': 'priya@lumenhealth.com'},
    {'name': 'Alex Thompson', 'position': 'Director of IT', 'company': 'Harbor Freight Labs', 'email': None},
    {'name': 'Sarah Kim', 'position': 'Chief Product Officer', 'company': 'Tandem Pay', 'email': 'sarah@tandempay.co'},
]

_LEAD_ID_RE = re.compile(r'ID: ([0-9a-f-]{36})')


class ScriptedAgentExecutor(AgentExecutor):
    """
    Replays a fixed script: a list of rounds, each a list of (tool_name, args).

    A script with fewer rounds than max_rounds ends the loop early, like a
    model that stops calling tools. Rounds beyond max_rounds are never played.
    """

    def __init__(self, rounds, tokens_per_round=100):
        self.rounds = rounds
        self.tokens_per_round = tokens_per_round
        self.prompts = []

    def script_for(self, system_prompt, specs):
        return self.rounds

    def run(self, model, system_prompt, tools, max_rounds, on_tool_call=None, on_round_finish=None) -> AgentResult:
        self.prompts.append(system_prompt)
        specs = {spec.name: spec for spec in tools}
        result = AgentResult()

        for round_number, calls in enumerate(self.script_for(system_prompt, specs)[:max_rounds], 1):
            result.rounds = round_number
            result.total_tokens += self.tokens_per_round
            records = []
            for name, args in calls:
                rec = self._invoke(specs, name, args, round_number)
                result.tool_calls.append(rec)
                records.append(rec)
                if on_tool_call:
                    on_tool_call(rec)
            if on_round_finish:
                on_round_finish(round_number, records, result.total_tokens)

        return result


def _simulate_delay(min_s=0.1, max_s=0.3):
    """Small delay to simulate model latency."""
    time.sleep(random.uniform(min_s, max_s))


class MockAgentExecutor(ScriptedAgentExecutor):
    """Stage-aware canned sessions, chosen by which tools the stage offers."""

    def __init__(self, delay=True):
        super().__init__(rounds=[], tokens_per_round=850)
        self.delay = delay

    def script_for(self, system_prompt, specs):
        if self.delay:
            _simulate_delay()
        if 'saveLead' in specs:
            return self._discovery_script()
        lead_ids = _LEAD_ID_RE.findall(system_prompt)
        if 'updateLead' in specs:
            return [[('updateLead', {'lead_id': lead_id, 'signals': ['Email verified', 'Active on LinkedIn']})
                     for lead_id in lead_ids]]
        if 'scoreLead' in specs:
            return [[('scoreLead', {
                'lead_id': lead_id,
                'confidence_score': random.randint(55, 95),
                'ai_summary': '[MOCK] Role and company size match the ICP.',
                'signals': ['Perfect role match', 'Target industry'],
            }) for lead_id in lead_ids]]
        return []

    def _discovery_script(self):
        count = random.randint(2, len(MOCK_LEADS))
        picked = random.sample(MOCK_LEADS, count)
        return [
            [('searchCompanies', {'query': 'software'})],
            [('saveLead', {
                **{k: v for k, v in lead.items() if v is not None},
                'confidence_score': random.randint(50, 90),
                'discovery_source': '[MOCK] Apollo company search',
                'ai_summary': f"[MOCK] {lead['position']} at a company in the target industry.",
                'signals': ['Matches target role', 'Company in target industry'],
            }) for lead in picked],
        ]
