"""
Points Ledger
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, config_overrides: dict = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)
        config_overrides: Extra config values applied after the environment
            config (tests use this to point at a file-backed database)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    CORS(app, origins=app.config['CORS_ORIGINS'], allow_headers=['Content-Type', 'Authorization'])

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'pointsledger'}

    logger.info(f'Points ledger app created (config={config_name})')
    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api import loyalty_bp, settings_bp, evaluations_bp
    from .webhooks import order_events_bp

    # Accounts, redemption, leaderboard
    app.register_blueprint(loyalty_bp, url_prefix='/api/loyalty')

    # Program settings
    app.register_blueprint(settings_bp, url_prefix='/api/loyalty/settings')

    # Monthly representative evaluations
    app.register_blueprint(evaluations_bp, url_prefix='/api/loyalty/evaluations')

    # Delivery workflow events
    app.register_blueprint(order_events_bp, url_prefix='/webhook')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.exceptions import PointsLedgerError
    from .utils.errors import exception_response, bad_request, not_found, internal_error

    @app.errorhandler(PointsLedgerError)
    def handle_points_ledger_error(error):
        return exception_response(error)

    @app.errorhandler(400)
    def handle_bad_request(error):
        return bad_request('Bad request')

    @app.errorhandler(404)
    def handle_not_found(error):
        return not_found('Not found')

    @app.errorhandler(500)
    def handle_internal_error(error):
        return internal_error()
