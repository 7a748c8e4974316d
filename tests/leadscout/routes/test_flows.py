"""Tests for the flow routes — emit-event, webhook, manual trigger."""
import time
from unittest.mock import patch

from leadscout.pipeline.triggers import on_contact_added, on_lead_created


class TestEmitEvent:

    def test_emits_lead_created(self, client, mock_queue):
        payload = {'event': 'lead/created', 'data': {'leadId': 'l1', 'leadName': 'Maya Chen'}}
        resp = client.post('/flows/emit-event', json=payload)
        assert resp.status_code == 200
        assert resp.get_json() == {'success': True, 'event': 'lead/created'}
        assert mock_queue.enqueue.call_args.args == (on_lead_created, payload['data'])

    def test_emits_contact_added(self, client, mock_queue):
        client.post('/flows/emit-event', json={'event': 'contact/added'})
        assert mock_queue.enqueue.call_args.args == (on_contact_added, {})

    def test_event_required(self, client, mock_queue):
        resp = client.post('/flows/emit-event', json={})
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'event is required'

    def test_internal_event_rejected(self, client, mock_queue):
        resp = client.post('/flows/emit-event', json={'event': 'campaign/started'})
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'Invalid event. Allowed: lead/created, contact/added'
        mock_queue.enqueue.assert_not_called()

    def test_send_failure_500(self, client, mock_queue):
        mock_queue.enqueue.side_effect = ConnectionError('redis down')
        resp = client.post('/flows/emit-event', json={'event': 'lead/created'})
        assert resp.status_code == 500
        assert resp.get_json()['success'] is False


class TestWebhook:

    def test_fires_webhook_flows(self, client, make_flow):
        flow = make_flow(trigger_type='webhook')
        with patch('leadscout.pipeline.triggers.notify_flow_triggered'):
            data = client.post('/flows/webhook', json={'event': 'form.submitted'}).get_json()
        assert data['success'] is True
        assert data['results'] == [{'flowId': flow.id, 'nodeCount': 2}]

    def test_no_flows(self, client):
        data = client.post('/flows/webhook', json={}).get_json()
        assert data['success'] is False
        assert data['triggered'] == 0

    def test_busy_fanout_returns_202(self, client, make_flow, fake_redis, mock_queue):
        make_flow(trigger_type='webhook')
        fake_redis.zadd('concurrency:fanout', {f'busy-{i}': time.time() - 1 for i in range(10)})
        resp = client.post('/flows/webhook', json={'event': 'form.submitted'})
        assert resp.status_code == 202
        assert resp.get_json()['status'] == 'queued'
        mock_queue.enqueue_in.assert_called_once()


class TestManualTrigger:

    def test_trigger(self, client, make_flow):
        flow = make_flow(nodes=1)
        with patch('leadscout.pipeline.triggers.notify_flow_triggered'):
            resp = client.post(f'/flows/{flow.id}/trigger', json={'trigger_source': 'dashboard'})
        assert resp.status_code == 200
        assert resp.get_json()['execution']['trigger_source'] == 'dashboard'

    def test_unknown_flow_404(self, client):
        assert client.post('/flows/nope/trigger').status_code == 404

    def test_inactive_flow_400(self, client, make_flow):
        flow = make_flow(status='paused')
        resp = client.post(f'/flows/{flow.id}/trigger')
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'Flow is not active. Activate it first.'
