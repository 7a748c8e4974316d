"""Tests for leadscout.pipeline.ledger — run lifecycle, steps, checkpoints."""
from datetime import date

import pytest

from leadscout.models.agent_run import AgentRun
from leadscout.models.campaign import Campaign
from leadscout.pipeline.ledger import (
    RunLedger, RunStatus, CampaignStatus, IllegalTransition, RunCancelled,
    RunNotFound, CampaignNotFound, check_run_transition, check_campaign_transition,
)
from leadscout.services.metrics import get_campaign_metrics


@pytest.fixture
def ledger():
    return RunLedger()


@pytest.fixture
def campaign(make_campaign):
    return make_campaign()


def _reload_campaign(session, campaign_id):
    session.expire_all()
    return session.get(Campaign, campaign_id)


class TestTransitionTables:

    @pytest.mark.parametrize('current, target', [
        ('pending', 'running'), ('pending', 'cancelled'), ('pending', 'error'),
        ('running', 'completed'), ('running', 'cancelled'), ('running', 'error'),
    ])
    def test_allowed_run_transitions(self, current, target):
        assert check_run_transition(current, target) == RunStatus(target)

    @pytest.mark.parametrize('current, target', [
        ('pending', 'completed'), ('completed', 'running'), ('cancelled', 'running'),
        ('error', 'completed'), ('completed', 'cancelled'),
    ])
    def test_illegal_run_transitions(self, current, target):
        with pytest.raises(IllegalTransition):
            check_run_transition(current, target)

    def test_campaign_same_state_is_noop(self):
        assert check_campaign_transition('paused', 'paused') is None

    def test_campaign_paused_cannot_complete(self):
        with pytest.raises(IllegalTransition):
            check_campaign_transition('paused', 'completed')

    def test_campaign_completed_can_rerun(self):
        assert check_campaign_transition('completed', 'running') == CampaignStatus.RUNNING


class TestRunLifecycle:

    def test_create_run_is_pending(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        assert run.status == 'pending'
        assert run.steps_total == 3
        assert ledger.has_active_run(campaign.id)

    def test_create_run_for_missing_campaign(self, ledger):
        with pytest.raises(CampaignNotFound):
            ledger.create_run('nope')

    def test_start_moves_run_and_campaign_to_running(self, ledger, campaign, session):
        run = ledger.create_run(campaign.id)
        started = ledger.start(run.id)
        assert started.status == 'running'
        assert started.started_at is not None
        assert _reload_campaign(session, campaign.id).status == 'running'

    def test_complete_updates_campaign_aggregates(self, ledger, make_campaign, session):
        campaign = make_campaign(leads_found=4, total_runs=1)
        run = ledger.create_run(campaign.id)
        ledger.start(run.id)

        done = ledger.complete(run.id, leads_found=3, llm_tokens_used=1200, api_calls_made=7,
                               metrics={'leads_discovered': 3, 'runs_count': 1})

        assert done.status == 'completed'
        assert done.completed_at is not None
        assert done.llm_tokens_used == 1200
        c = _reload_campaign(session, campaign.id)
        assert c.status == 'completed'
        assert c.total_runs == 2
        assert c.leads_found == 7
        assert c.last_run_at is not None
        metrics = get_campaign_metrics(campaign.id, date.today())
        assert metrics.leads_discovered == 3
        assert metrics.runs_count == 1

    def test_complete_twice_counts_once(self, ledger, campaign, session):
        run = ledger.create_run(campaign.id)
        ledger.start(run.id)
        ledger.complete(run.id, leads_found=2, metrics={'runs_count': 1})
        ledger.complete(run.id, leads_found=2, metrics={'runs_count': 1})

        c = _reload_campaign(session, campaign.id)
        assert c.total_runs == 1
        assert c.leads_found == 2
        assert get_campaign_metrics(campaign.id).runs_count == 1

    def test_complete_pending_run_is_illegal(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        with pytest.raises(IllegalTransition):
            ledger.complete(run.id)

    def test_complete_cancelled_run_raises_run_cancelled(self, ledger, campaign, session):
        run = ledger.create_run(campaign.id)
        ledger.start(run.id)
        ledger.cancel_active(campaign.id)
        with pytest.raises(RunCancelled):
            ledger.complete(run.id, leads_found=2, metrics={'runs_count': 1})
        assert ledger.get_run(run.id).status == 'cancelled'
        assert _reload_campaign(session, campaign.id).total_runs == 0

    def test_fail_records_message(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        failed = ledger.fail(run.id, 'x' * 5000)
        assert failed.status == 'error'
        assert len(failed.error_message) == 2000

    def test_fail_leaves_terminal_run_alone(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        ledger.cancel_active(campaign.id)
        assert ledger.fail(run.id, 'late') is None
        assert ledger.get_run(run.id).status == 'cancelled'

    def test_cancel_active_only_touches_active_runs(self, ledger, campaign, make_run):
        done = make_run(campaign.id, status='completed')
        pending = make_run(campaign.id, status='pending')
        running = make_run(campaign.id, status='running')

        cancelled = ledger.cancel_active(campaign.id)

        assert set(cancelled) == {pending.id, running.id}
        assert ledger.get_run(running.id).completed_at is not None
        assert ledger.get_run(done.id).status == 'completed'
        assert not ledger.has_active_run(campaign.id)

    def test_get_run_missing(self, ledger):
        with pytest.raises(RunNotFound):
            ledger.get_run('nope')


class TestCancellationGuards:

    def test_ensure_active_raises_after_cancel(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        ledger.cancel_active(campaign.id)
        with pytest.raises(RunCancelled) as exc_info:
            ledger.ensure_active(run.id)
        assert exc_info.value.status == 'cancelled'

    def test_record_step_refused_after_cancel(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        ledger.cancel_active(campaign.id)
        with pytest.raises(RunCancelled):
            ledger.record_step(run.id, 'searchCompanies')
        assert ledger.step_count(run.id) == 0

    def test_update_progress_refused_after_cancel(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        ledger.cancel_active(campaign.id)
        with pytest.raises(RunCancelled):
            ledger.update_progress(run.id, steps_completed=5)


class TestSteps:

    def test_step_numbers_are_gapless_across_stages(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        numbers = [
            ledger.record_step(run.id, 'searchCompanies', stage='discovery'),
            ledger.record_step(run.id, 'saveLead', stage='discovery'),
            ledger.record_step(run.id, 'updateLead', stage='enrichment'),
        ]
        assert numbers == [1, 2, 3]
        steps = ledger.list_steps(run.id)
        assert [s.stage for s in steps] == ['discovery', 'discovery', 'enrichment']
        assert steps[0].campaign_id == campaign.id

    def test_step_numbers_are_per_run(self, ledger, campaign):
        first = ledger.create_run(campaign.id)
        second = ledger.create_run(campaign.id)
        ledger.record_step(first.id, 'a')
        ledger.record_step(first.id, 'b')
        assert ledger.record_step(second.id, 'a') == 1

    def test_list_steps_after(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        for name in ('a', 'b', 'c'):
            ledger.record_step(run.id, name)
        assert [s.tool_name for s in ledger.list_steps(run.id, after=1)] == ['b', 'c']

    def test_step_stores_error(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        ledger.record_step(run.id, 'findEmail', tool_input={'domain': 'x.io'}, tool_output={'error': 'bad'},
                           status='error', error_message='bad', duration_ms=12)
        step = ledger.list_steps(run.id)[0]
        assert step.status == 'error'
        assert step.tool_input == {'domain': 'x.io'}
        assert step.duration_ms == 12

    def test_update_progress(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        ledger.update_progress(run.id, steps_completed=4, leads_found=2)
        run = ledger.get_run(run.id)
        assert (run.steps_completed, run.leads_found) == (4, 2)


class TestQueries:

    def test_list_runs_newest_first(self, ledger, campaign):
        ids = [ledger.create_run(campaign.id).id for _ in range(3)]
        ledger.cancel_active(campaign.id)
        listed = [r.id for r in ledger.list_runs(campaign.id)]
        assert listed == list(reversed(ids))
        assert ledger.latest_run(campaign.id).id == ids[-1]

    def test_latest_run_none(self, ledger, campaign):
        assert ledger.latest_run(campaign.id) is None

    def test_checkpoints_round_trip(self, ledger, campaign, session):
        run = ledger.create_run(campaign.id)
        ledger.save_checkpoint(run.id, 'load-campaign', {'id': campaign.id})
        ledger.save_checkpoint(run.id, 'run-discovery', {'lead_ids': ['a']})
        assert ledger.get_checkpoints(run.id) == {
            'load-campaign': {'id': campaign.id},
            'run-discovery': {'lead_ids': ['a']},
        }
        session.expire_all()
        stored = session.get(AgentRun, run.id).run_metadata
        assert set(stored['checkpoints']) == {'load-campaign', 'run-discovery'}


class TestUsage:

    def test_add_usage_accumulates(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        ledger.add_usage(run.id, tokens=300, api_calls=2)
        ledger.add_usage(run.id, tokens=150)
        run = ledger.get_run(run.id)
        assert (run.llm_tokens_used, run.api_calls_made) == (450, 2)

    def test_complete_overwrites_live_usage_with_totals(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        ledger.start(run.id)
        ledger.add_usage(run.id, tokens=300)
        done = ledger.complete(run.id, llm_tokens_used=500, api_calls_made=3)
        assert (done.llm_tokens_used, done.api_calls_made) == (500, 3)

    def test_is_active(self, ledger, campaign):
        run = ledger.create_run(campaign.id)
        assert ledger.is_active(run.id)
        ledger.cancel_active(campaign.id)
        assert not ledger.is_active(run.id)
