"""
Flow routes — event intake, inbound webhooks, manual flow trigger.
"""
import logging

from flask import Blueprint, request, jsonify

from leadscout.events import EXTERNAL_EVENTS, send_event
from leadscout.pipeline.triggers import handle_webhook, trigger_flow, FlowNotFound, FlowNotRunnable

logger = logging.getLogger('routes.flows')

bp = Blueprint('flows', __name__)


@bp.route('/flows/emit-event', methods=['POST'])
def emit_event():
    """Emit lead/created or contact/added so matching flows fan out."""
    data = request.get_json(silent=True) or {}
    event = data.get('event')
    if not event:
        return jsonify({'success': False, 'error': 'event is required'}), 400
    if event not in EXTERNAL_EVENTS:
        return jsonify({
            'success': False,
            'error': f"Invalid event. Allowed: {', '.join(EXTERNAL_EVENTS)}",
        }), 400

    try:
        send_event(event, data.get('data') or {})
    except Exception as e:
        logger.error("Could not emit %s: %s", event, e)
        return jsonify({'success': False, 'error': str(e)}), 500
    return jsonify({'success': True, 'event': event})


@bp.route('/flows/webhook', methods=['POST'])
def webhook():
    """Inbound webhook: fires one flow (flow_id) or every active webhook flow."""
    data = request.get_json(silent=True) or {}
    result = handle_webhook(
        flow_id=data.get('flow_id'),
        event=data.get('event'),
        data=data.get('data'),
    )
    if result.get('status') == 'queued':
        return jsonify(result), 202
    return jsonify(result)


@bp.route('/flows/<flow_id>/trigger', methods=['POST'])
def trigger(flow_id):
    data = request.get_json(silent=True) or {}
    try:
        result = trigger_flow(flow_id, trigger_source=data.get('trigger_source'), context=data.get('context'))
    except FlowNotFound:
        return jsonify({'success': False, 'error': 'Flow not found'}), 404
    except FlowNotRunnable as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    return jsonify(result)
