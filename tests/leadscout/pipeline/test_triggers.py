"""Tests for leadscout.pipeline.triggers — campaign start/stop and flow fan-out."""
import time
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from leadscout.models.activity import AgentActivity
from leadscout.models.campaign import Campaign
from leadscout.pipeline.ledger import RunLedger, CampaignNotFound
from leadscout.pipeline.manager import run_pipeline
from leadscout.pipeline.triggers import (
    start_campaign, stop_campaign, on_lead_created, on_contact_added, run_scheduled_flows,
    handle_webhook, trigger_flow, schedule_hourly_flows,
    CampaignAlreadyRunning, FlowNotFound, FlowNotRunnable,
)


@pytest.fixture
def ledger():
    return RunLedger()


@pytest.fixture
def slack():
    with patch('leadscout.pipeline.triggers.notify_flow_triggered') as notify:
        yield notify


def _status(session, campaign_id):
    session.expire_all()
    return session.get(Campaign, campaign_id).status


class TestStartCampaign:

    def test_creates_pending_run_and_enqueues(self, make_campaign, ledger, mock_queue):
        campaign = make_campaign(agent_ids=['agent-1', 'agent-2'])

        result = start_campaign(campaign.id, ledger=ledger)

        assert result['success'] is True
        run = ledger.get_run(result['runId'])
        assert run.status == 'pending'
        args = mock_queue.enqueue.call_args.args
        assert args == (run_pipeline, campaign.id, run.id, ['agent-1', 'agent-2'])

    def test_logs_activity(self, make_campaign, ledger, mock_queue, session):
        campaign = make_campaign()
        start_campaign(campaign.id, ledger=ledger)
        activity = session.query(AgentActivity).filter_by(action='campaign_started').one()
        assert activity.campaign_id == campaign.id
        assert activity.agent_name == 'Campaign Runner'

    def test_missing_campaign(self, ledger, mock_queue, fake_redis):
        with pytest.raises(CampaignNotFound):
            start_campaign('nope', ledger=ledger)
        mock_queue.enqueue.assert_not_called()
        assert fake_redis.get('campaign-start:nope') is None

    def test_rejects_running_campaign(self, make_campaign, ledger, mock_queue):
        campaign = make_campaign(status='running')
        with pytest.raises(CampaignAlreadyRunning):
            start_campaign(campaign.id, ledger=ledger)
        mock_queue.enqueue.assert_not_called()

    def test_rejects_second_start_while_run_pending(self, make_campaign, ledger, mock_queue):
        campaign = make_campaign()
        start_campaign(campaign.id, ledger=ledger)
        with pytest.raises(CampaignAlreadyRunning):
            start_campaign(campaign.id, ledger=ledger)
        assert len(ledger.list_runs(campaign.id)) == 1
        assert mock_queue.enqueue.call_count == 1

    def test_held_start_lock_rejects(self, make_campaign, ledger, mock_queue, fake_redis):
        campaign = make_campaign()
        fake_redis.set(f'campaign-start:{campaign.id}', '1')
        with pytest.raises(CampaignAlreadyRunning):
            start_campaign(campaign.id, ledger=ledger)
        assert ledger.list_runs(campaign.id) == []

    def test_lock_released_after_start(self, make_campaign, ledger, mock_queue, fake_redis):
        campaign = make_campaign()
        start_campaign(campaign.id, ledger=ledger)
        assert fake_redis.get(f'campaign-start:{campaign.id}') is None

    def test_completed_campaign_can_start_again(self, make_campaign, make_run, ledger, mock_queue):
        campaign = make_campaign(status='completed')
        make_run(campaign.id, status='completed')
        assert start_campaign(campaign.id, ledger=ledger)['success'] is True

    def test_enqueue_failure_marks_run_error(self, make_campaign, ledger, mock_queue):
        campaign = make_campaign()
        mock_queue.enqueue.side_effect = ConnectionError('redis down')
        with pytest.raises(ConnectionError):
            start_campaign(campaign.id, ledger=ledger)
        runs = ledger.list_runs(campaign.id)
        assert [r.status for r in runs] == ['error']
        assert not ledger.has_active_run(campaign.id)


class TestStopCampaign:

    def test_cancels_active_runs_and_pauses(self, make_campaign, make_run, ledger, session):
        campaign = make_campaign(status='running')
        running = make_run(campaign.id, status='running')

        result = stop_campaign(campaign.id, ledger=ledger)

        assert result == {'success': True, 'cancelledRuns': [running.id]}
        assert ledger.get_run(running.id).status == 'cancelled'
        assert _status(session, campaign.id) == 'paused'
        assert session.query(AgentActivity).filter_by(action='campaign_stopped').count() == 1

    def test_idle_campaign_is_untouched(self, make_campaign, ledger, session):
        campaign = make_campaign(status='completed')
        assert stop_campaign(campaign.id, ledger=ledger) == {'success': True, 'cancelledRuns': []}
        assert _status(session, campaign.id) == 'completed'

    def test_running_campaign_without_runs_is_paused(self, make_campaign, ledger, session):
        campaign = make_campaign(status='running')
        assert stop_campaign(campaign.id, ledger=ledger)['cancelledRuns'] == []
        assert _status(session, campaign.id) == 'paused'

    def test_missing_campaign(self, ledger):
        with pytest.raises(CampaignNotFound):
            stop_campaign('nope', ledger=ledger)


class TestRecordCreatedFanOut:

    def test_lead_created_fires_matching_flows(self, make_flow, slack, session):
        flow = make_flow(nodes=3, trigger_type='lead_created')
        make_flow(name='Scheduled digest', trigger_type='scheduled')

        result = on_lead_created({'leadId': 'l1', 'leadName': 'Maya Chen', 'leadCompany': 'Northwind'})

        assert result == {'triggered': 1, 'results': [{'flowId': flow.id, 'nodeCount': 3}]}
        activity = session.query(AgentActivity).filter_by(action='flow_auto_triggered').one()
        assert activity.detail == 'Flow "New lead follow-up" auto-triggered by new lead: Maya Chen (Northwind)'
        assert activity.campaign_id is None
        assert activity.agent_name == 'Flow Engine'
        flow_arg, trigger, detail = slack.call_args.args
        assert flow_arg['node_count'] == 3
        assert trigger == 'lead_created'

    def test_lead_without_company(self, make_flow, slack, session):
        make_flow()
        on_lead_created({'leadName': 'Jorge Ramirez'})
        detail = session.query(AgentActivity).one().detail
        assert detail.endswith('(Unknown Company)')

    def test_inactive_flows_are_ignored(self, make_flow, slack):
        make_flow(status='draft')
        make_flow(status='paused')
        assert on_lead_created({'leadName': 'x'}) == {'triggered': 0, 'results': []}
        slack.assert_not_called()

    def test_contact_added(self, make_flow, slack, session):
        make_flow(trigger_type='contact_added')
        make_flow(trigger_type='lead_created')
        result = on_contact_added({'contactId': 'c1', 'contactName': 'Priya Sharma'})
        assert result['triggered'] == 1
        assert 'Priya Sharma' in session.query(AgentActivity).one().detail

    def test_requeues_when_fanout_slots_are_full(self, make_flow, slack, fake_redis, mock_queue):
        make_flow()
        fake_redis.zadd('concurrency:fanout', {f'busy-{i}': time.time() - 1 for i in range(10)})
        data = {'leadName': 'Maya Chen'}

        result = on_lead_created(data)

        assert result == {'status': 'requeued', 'triggered': 0}
        slack.assert_not_called()
        delay, fn, arg = mock_queue.enqueue_in.call_args.args
        assert delay.total_seconds() == 30
        assert fn is on_lead_created
        assert arg == data

    def test_releases_fanout_slot(self, make_flow, slack, fake_redis):
        make_flow()
        on_lead_created({'leadName': 'Maya Chen'})
        assert fake_redis.zcard('concurrency:fanout') == 0


class TestScheduledFlows:

    def test_fires_scheduled_flows_and_books_next_hour(self, make_flow, slack, mock_queue, session):
        make_flow(nodes=4, trigger_type='scheduled')

        result = run_scheduled_flows()

        assert result['triggered'] == 1
        activity = session.query(AgentActivity).filter_by(action='flow_scheduled_run').one()
        assert activity.detail == 'Scheduled flow "New lead follow-up" executed with 4 nodes'
        mock_queue.enqueue_at.assert_called_once()
        assert mock_queue.enqueue_at.call_args.args[1] is run_scheduled_flows

    def test_schedule_targets_top_of_next_hour(self, mock_queue, fake_redis):
        now = datetime(2026, 3, 4, 10, 17, 42, tzinfo=timezone.utc)
        schedule_hourly_flows(now=now)
        when = mock_queue.enqueue_at.call_args.args[0]
        assert when == datetime(2026, 3, 4, 11, 0, tzinfo=timezone.utc)
        assert fake_redis.get('cron:scheduled-flows:2026030411') == '1'

    def test_schedule_slot_claimed_once(self, mock_queue):
        now = datetime(2026, 3, 4, 10, 17, tzinfo=timezone.utc)
        assert schedule_hourly_flows(now=now) is not None
        assert schedule_hourly_flows(now=now) is None
        assert mock_queue.enqueue_at.call_count == 1

    def test_schedule_survives_redis_outage(self, mock_queue):
        with patch('leadscout.pipeline.triggers._redis', side_effect=ConnectionError('down')):
            assert schedule_hourly_flows() is None
        mock_queue.enqueue_at.assert_not_called()


class TestWebhook:

    def test_fires_all_webhook_flows(self, make_flow, slack, session):
        make_flow(name='Hook A', trigger_type='webhook')
        make_flow(name='Hook B', trigger_type='webhook')

        result = handle_webhook(event='deal.closed')

        assert result['success'] is True
        assert result['triggered'] == 2
        assert 'received_at' in result
        details = {a.detail for a in session.query(AgentActivity).filter_by(action='webhook_received')}
        assert details == {
            'Webhook triggered flow "Hook A" with event: deal.closed',
            'Webhook triggered flow "Hook B" with event: deal.closed',
        }

    def test_targets_one_flow(self, make_flow, slack):
        target = make_flow(name='Hook A', trigger_type='webhook')
        make_flow(name='Hook B', trigger_type='webhook')
        result = handle_webhook(flow_id=target.id)
        assert result['results'] == [{'flowId': target.id, 'nodeCount': 2}]

    def test_no_webhook_flows(self, make_flow, slack):
        make_flow(trigger_type='lead_created')
        assert handle_webhook(event='x') == {
            'success': False, 'message': 'No active webhook flows found', 'triggered': 0,
        }

    def test_busy_fanout_queues_webhook(self, make_flow, slack, fake_redis, mock_queue):
        make_flow(trigger_type='webhook')
        fake_redis.zadd('concurrency:fanout', {f'busy-{i}': time.time() - 1 for i in range(10)})

        result = handle_webhook(flow_id='f1', event='deal.closed', data={'id': 7})

        assert result['status'] == 'queued'
        assert result['success'] is True
        assert result['triggered'] == 0
        assert 'No active webhook flows' not in result['message']
        slack.assert_not_called()
        _, fn, *args = mock_queue.enqueue_in.call_args.args
        assert fn is handle_webhook
        assert args == ['f1', 'deal.closed', {'id': 7}]


class TestManualTrigger:

    def test_returns_execution_plan(self, make_flow, slack, session):
        flow = make_flow(nodes=2, trigger_type='lead_created')

        result = trigger_flow(flow.id, context={'leadId': 'l1'})

        assert result['success'] is True
        assert result['flow']['id'] == flow.id
        execution = result['execution']
        assert execution['node_count'] == 2
        assert execution['trigger_source'] == 'lead_created'
        assert execution['context'] == {'leadId': 'l1'}
        assert [n['label'] for n in execution['plan']] == ['Step 1', 'Step 2']
        assert session.query(AgentActivity).filter_by(action='flow_triggered').count() == 1

    def test_explicit_trigger_source(self, make_flow, slack):
        flow = make_flow()
        assert trigger_flow(flow.id, trigger_source='button')['execution']['trigger_source'] == 'button'

    def test_missing_flow(self):
        with pytest.raises(FlowNotFound):
            trigger_flow('nope')

    def test_inactive_flow(self, make_flow):
        flow = make_flow(status='draft')
        with pytest.raises(FlowNotRunnable, match='not active'):
            trigger_flow(flow.id)

    def test_flow_without_nodes(self, make_flow):
        flow = make_flow(nodes=0)
        with pytest.raises(FlowNotRunnable, match='no nodes'):
            trigger_flow(flow.id)
