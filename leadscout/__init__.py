"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
import logging

from flask import Flask, jsonify

from leadscout.pipeline.ledger import IllegalTransition

logger = logging.getLogger('leadscout')


def create_app():
    """Create and configure the Flask application."""
    from leadscout.logging_config import configure_logging

    app = Flask(__name__)

    configure_logging(app)

    # Register blueprints
    from leadscout.routes.campaigns import bp as campaigns_bp
    from leadscout.routes.leads import bp as leads_bp
    from leadscout.routes.flows import bp as flows_bp
    from leadscout.routes.health import bp as health_bp

    app.register_blueprint(campaigns_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(flows_bp)
    app.register_blueprint(health_bp)

    @app.errorhandler(IllegalTransition)
    def illegal_transition(e):
        return jsonify({'success': False, 'error': str(e)}), 409

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error: %s", getattr(e, 'original_exception', e))
        return jsonify({'error': 'Internal server error'}), 500

    # Initialize circuit breakers for external API services
    from leadscout.extensions import redis_client
    from leadscout.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic, so no create_all() here.
    import importlib
    importlib.import_module('leadscout.models.campaign')
    importlib.import_module('leadscout.models.agent_run')
    importlib.import_module('leadscout.models.discovered_lead')
    importlib.import_module('leadscout.models.activity')
    importlib.import_module('leadscout.models.campaign_metric')
    importlib.import_module('leadscout.models.flow')

    return app
