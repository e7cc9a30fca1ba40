"""Flask application factory."""
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from cotizador.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Initialize database
    init_db(app)

    # Load the acting user before each request
    from cotizador.middleware import load_principal

    @app.before_request
    def before_request_handler():
        load_principal()

    # Error Handlers
    from cotizador.exceptions import CotizadorError

    @app.errorhandler(CotizadorError)
    def handle_cotizador_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"CotizadorError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"CotizadorError [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'status': 'error', 'message': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from cotizador.blueprints.quotes import quotes_bp
    from cotizador.blueprints.locks import locks_bp
    from cotizador.blueprints.autosave import autosave_bp
    from cotizador.blueprints.versions import versions_bp

    app.register_blueprint(quotes_bp)
    app.register_blueprint(locks_bp)
    app.register_blueprint(autosave_bp)
    app.register_blueprint(versions_bp)

    # Register CLI commands
    from cotizador.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"LOCK_TTL_SECONDS={app.config.get('LOCK_TTL_SECONDS')}")
    app.logger.info(f"TANGO_API_URL={app.config.get('TANGO_API_URL')}")

    return app
