"""Tests for leadscout.pipeline.discovery — DiscoveryStage via scripted agent sessions."""
from unittest.mock import MagicMock

import pytest

from leadscout.models.activity import AgentActivity
from leadscout.models.discovered_lead import DiscoveredLead
from leadscout.pipeline.discovery import DiscoveryStage
from leadscout.pipeline.ledger import RunLedger, RunCancelled
from leadscout.pipeline.mock_adapters import ScriptedAgentExecutor
from leadscout.tools.base import ToolResult


def _lead(name, score=80, **extra):
    return ('saveLead', {'name': name, 'confidence_score': score, 'company': 'Northwind', **extra})


@pytest.fixture
def ledger():
    return RunLedger()


@pytest.fixture
def setup(make_campaign, ledger):
    campaign = make_campaign(max_leads_per_run=3)
    run = ledger.create_run(campaign.id)
    ledger.start(run.id)
    return campaign, run


@pytest.fixture
def caps():
    caps = MagicMock()
    caps.search_companies.return_value = ToolResult(data={'companies': [{'name': 'Northwind'}]})
    caps.find_email.return_value = ToolResult(data={'email': None, 'confidence': 0},
                                              error='Hunter.io API key not configured.')
    return caps


def _stage(setup, ledger, caps, rounds):
    campaign, run = setup
    executor = ScriptedAgentExecutor(rounds)
    return DiscoveryStage(campaign.targeting(), run.id, ledger, executor, caps), executor


class TestDiscoveryStage:

    def test_saves_leads_and_returns_ids(self, setup, ledger, caps, session):
        stage, _ = _stage(setup, ledger, caps, [
            [('searchCompanies', {'query': 'fintech'})],
            [_lead('Maya Chen', signals=['Matches target role']), _lead('Jorge Ramirez', 65)],
        ])
        result = stage.execute()

        assert len(result.lead_ids) == 2
        assert result.processed == 2
        assert result.rounds == 2
        assert result.tokens_used == 200
        assert result.api_calls == 1
        leads = session.query(DiscoveredLead).all()
        assert {l.name for l in leads} == {'Maya Chen', 'Jorge Ramirez'}
        assert all(l.status == 'pending_review' for l in leads)
        assert all(l.campaign_id == setup[0].id for l in leads)

    def test_every_tool_call_becomes_a_step(self, setup, ledger, caps):
        stage, _ = _stage(setup, ledger, caps, [
            [('searchCompanies', {'query': 'fintech'}),
             ('findEmail', {'first_name': 'Maya', 'last_name': 'Chen', 'domain': 'northwind.io'})],
            [_lead('Maya Chen')],
        ])
        stage.execute()

        steps = ledger.list_steps(setup[1].id)
        assert [s.step_number for s in steps] == [1, 2, 3]
        assert [s.tool_name for s in steps] == ['searchCompanies', 'findEmail', 'saveLead']
        assert all(s.stage == 'discovery' for s in steps)
        assert steps[1].status == 'error'
        assert 'not configured' in steps[1].error_message

    def test_progress_published_per_round(self, setup, ledger, caps):
        stage, _ = _stage(setup, ledger, caps, [[_lead('Maya Chen')], [_lead('Jorge Ramirez')]])
        stage.execute()
        run = ledger.get_run(setup[1].id)
        assert run.steps_completed == 2
        assert run.leads_found == 2

    def test_usage_published_per_round(self, setup, ledger, caps):
        stage, _ = _stage(setup, ledger, caps, [
            [('searchCompanies', {'query': 'fintech'})],
            [_lead('Maya Chen')],
        ])
        stage.execute()
        run = ledger.get_run(setup[1].id)
        assert run.llm_tokens_used == 200
        assert run.api_calls_made == 1

    def test_invalid_arguments_are_steps_not_leads(self, setup, ledger, caps, session):
        stage, _ = _stage(setup, ledger, caps, [[('saveLead', {'name': 'No Score'})]])
        result = stage.execute()
        assert result.lead_ids == []
        assert result.tool_errors
        assert session.query(DiscoveredLead).count() == 0
        assert ledger.list_steps(setup[1].id)[0].status == 'error'

    def test_lead_cap(self, setup, ledger, caps, session):
        stage, _ = _stage(setup, ledger, caps, [[_lead(f'Lead {i}') for i in range(5)]])
        result = stage.execute()
        assert len(result.lead_ids) == 3
        assert session.query(DiscoveredLead).count() == 3

    def test_round_cap(self, setup, ledger, caps):
        campaign, run = setup
        executor = ScriptedAgentExecutor([[('searchCompanies', {'query': 'x'})]] * 10)
        stage = DiscoveryStage(campaign.targeting(), run.id, ledger, executor, caps, max_rounds=4)
        assert stage.execute().rounds == 4

    def test_prompt_carries_targeting(self, setup, ledger, caps):
        stage, executor = _stage(setup, ledger, caps, [])
        stage.execute()
        prompt = executor.prompts[0]
        assert 'Fintech' in prompt
        assert 'CTO, VP Engineering' in prompt
        assert 'Max Leads to Save: 3' in prompt

    def test_activity_entries(self, setup, ledger, caps, session):
        stage, _ = _stage(setup, ledger, caps, [[_lead('Maya Chen')]])
        stage.execute()
        actions = [a.action for a in session.query(AgentActivity).order_by(AgentActivity.id)]
        assert actions == ['discovery_started', 'lead_discovered', 'discovery_completed']

    def test_cancelled_run_stops_writes(self, setup, ledger, caps, session):
        campaign, run = setup
        stage, _ = _stage(setup, ledger, caps, [[_lead('Maya Chen')], [_lead('Jorge Ramirez')]])
        original = stage.round_finished

        def cancel_after_first_round(*args):
            original(*args)
            ledger.cancel_active(campaign.id)

        stage.round_finished = cancel_after_first_round
        with pytest.raises(RunCancelled):
            stage.execute()
        assert [l.name for l in session.query(DiscoveredLead)] == ['Maya Chen']

    def test_stage_error_logged_and_raised(self, setup, ledger, session):
        caps = MagicMock()
        caps.search_companies.side_effect = RuntimeError('boom')
        stage, _ = _stage(setup, ledger, caps, [[('searchCompanies', {'query': 'x'})]])
        with pytest.raises(RuntimeError):
            stage.execute()
        assert session.query(AgentActivity).filter_by(action='discovery_error').count() == 1
