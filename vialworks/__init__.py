"""Flask application factory."""
import logging
import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from vialworks.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    if not app.config.get('TESTING'):
        logging.basicConfig(
            level=logging.DEBUG if app.debug else logging.INFO,
            format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
        )

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Order notification mail
    from vialworks.services.email_service import init_mail
    init_mail(app)

    # Prometheus request metrics
    from vialworks.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Error Handlers
    from vialworks.exceptions import VialWorksError

    @app.errorhandler(VialWorksError)
    def handle_vialworks_error(error):
        """Handle application exceptions as JSON."""
        if error.status_code >= 500:
            app.logger.error(f"VialWorksError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"VialWorksError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from vialworks.blueprints.main import main_bp
    from vialworks.blueprints.metrics import metrics_bp
    from vialworks.blueprints.inventory import inventory_bp
    from vialworks.blueprints.bom import bom_bp
    from vialworks.blueprints.production import production_bp
    from vialworks.blueprints.shipments import shipments_bp
    from vialworks.blueprints.orders import orders_bp
    from vialworks.blueprints.shop import shop_bp
    from vialworks.blueprints.webhooks import webhooks_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(bom_bp)
    app.register_blueprint(production_bp)
    app.register_blueprint(shipments_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(shop_bp)
    app.register_blueprint(webhooks_bp)

    # CLI commands
    from vialworks.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')}")

    return app
