"""
Health routes — liveness check and circuit-breaker health per provider.
"""
import logging

from flask import Blueprint, jsonify

from leadscout.services.circuit_breaker import get_all_breakers, BREAKER_SETTINGS, get_breaker

logger = logging.getLogger('routes.health')

bp = Blueprint('health', __name__)


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/health')
def services_health():
    """Breaker state for every external service."""
    breakers = get_all_breakers()
    services = {name: cb.get_health() for name, cb in sorted(breakers.items())}
    degraded = [name for name, health in services.items() if health['state'] != 'closed']
    return jsonify({
        'status': 'degraded' if degraded else 'healthy',
        'degraded': degraded,
        'services': services,
    })


@bp.route('/api/health/<service>/reset', methods=['POST'])
def reset_service(service):
    """Manually close a tripped breaker."""
    if service not in BREAKER_SETTINGS and service not in get_all_breakers():
        return jsonify({'error': f'Unknown service: {service}'}), 404
    cb = get_breaker(service)
    cb.reset()
    logger.info("Breaker %s reset via API", service)
    return jsonify(cb.get_health())
