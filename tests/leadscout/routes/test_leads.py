"""Tests for the lead review routes."""


class TestReviewRoutes:

    def test_approve(self, client, make_campaign, make_lead):
        campaign = make_campaign()
        lead = make_lead(campaign.id)
        resp = client.post(f'/leads/{lead.id}/approve')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['success'] is True
        assert data['changed'] is True
        assert data['lead']['status'] == 'approved'

    def test_repeat_approve_is_unchanged(self, client, make_campaign, make_lead):
        campaign = make_campaign()
        lead = make_lead(campaign.id, status='approved')
        data = client.post(f'/leads/{lead.id}/approve').get_json()
        assert data['changed'] is False

    def test_reject(self, client, make_campaign, make_lead):
        campaign = make_campaign()
        lead = make_lead(campaign.id)
        data = client.post(f'/leads/{lead.id}/reject').get_json()
        assert data['lead']['status'] == 'rejected'

    def test_unknown_lead_404(self, client):
        resp = client.post('/leads/nope/approve')
        assert resp.status_code == 404
        assert resp.get_json()['error'] == 'Lead not found'
