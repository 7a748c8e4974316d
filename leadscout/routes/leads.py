"""
Lead review routes — human approve / reject actions.
"""
import logging

from flask import Blueprint, jsonify

from leadscout.services.review import review_lead, LeadNotFound

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


def _review(lead_id, action):
    try:
        lead, changed = review_lead(lead_id, action)
    except LeadNotFound:
        return jsonify({'success': False, 'error': 'Lead not found'}), 404
    return jsonify({'success': True, 'changed': changed, 'lead': lead})


@bp.route('/leads/<lead_id>/approve', methods=['POST'])
def approve(lead_id):
    """Mark a discovered lead approved; repeated calls change nothing."""
    return _review(lead_id, 'approve')


@bp.route('/leads/<lead_id>/reject', methods=['POST'])
def reject(lead_id):
    """Mark a discovered lead rejected; repeated calls change nothing."""
    return _review(lead_id, 'reject')
