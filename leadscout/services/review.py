"""
Human review actions — approve / reject a discovered lead.

Campaign counters are bumped with a plain read-modify-write on the row.
Two reviewers acting on different leads of the same campaign at the same
moment can lose one increment (last writer wins); that race is accepted.
Repeating an action on a lead that already has the target status changes
nothing.
"""
import logging

from leadscout.database import get_session
from leadscout.models.campaign import Campaign
from leadscout.models.discovered_lead import DiscoveredLead
from leadscout.services.activity import log_activity
from leadscout.services.metrics import record_campaign_metrics

logger = logging.getLogger('services.review')

REVIEW_ACTIONS = {
    'approve': ('approved', 'leads_approved'),
    'reject': ('rejected', 'leads_rejected'),
}


class LeadNotFound(Exception):
    def __init__(self, lead_id):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} not found")


def review_lead(lead_id, action):
    """
    Apply a review action. Returns (lead_dict, changed).

    Switching a lead from approved to rejected (or back) moves it between
    counters: the new one is incremented, the old one decremented.
    """
    if action not in REVIEW_ACTIONS:
        raise ValueError(f"Unknown review action: {action}")
    status, counter = REVIEW_ACTIONS[action]

    session = get_session()
    try:
        lead = session.get(DiscoveredLead, lead_id)
        if lead is None:
            raise LeadNotFound(lead_id)
        if lead.status == status:
            return lead.to_dict(), False

        previous = lead.status
        lead.status = status
        campaign = session.get(Campaign, lead.campaign_id)
        if campaign is not None:
            setattr(campaign, counter, (getattr(campaign, counter) or 0) + 1)
            for other_status, other_counter in REVIEW_ACTIONS.values():
                if previous == other_status:
                    setattr(campaign, other_counter, max(0, (getattr(campaign, other_counter) or 0) - 1))
        session.commit()
        result = lead.to_dict()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    logger.info("Lead %s %s (was %s)", lead_id, status, previous)
    record_campaign_metrics(result['campaign_id'], **{counter: 1})
    log_activity('Reviewer', f'lead_{status}', f"{result['name']} marked {status}", campaign_id=result['campaign_id'])
    return result, True
