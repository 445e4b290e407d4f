from flask import Flask, jsonify
from flask_cors import CORS
from drylog.drying import drying_bp

# database imports
from drylog.models import db

from drylog.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def create_app(config_overrides=None):
    """Build the Flask application.

    Args:
        config_overrides: Optional dict applied after the environment config,
            e.g. {"SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:", "TESTING": True}
    """
    # Import config after dotenv is loaded
    from drylog.config import get_config
    from drylog.db_config import configure_database

    # Get the appropriate config class based on environment
    config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(log_level=app.config.get("LOG_LEVEL", "INFO"), log_file=app.config.get("LOG_FILE"))

    # Configure database separately
    configure_database(app, config_overrides)

    # Log the environment being used
    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    # Applies to all routes so CORS headers are sent on errors too
    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"])

    # Database is configured by configure_database() above
    db.init_app(app)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "environment": config_class.ENV}), 200

    # Register blueprints
    app.register_blueprint(drying_bp)

    # Global error handler so unmatched routes and unexpected errors still answer JSON
    @app.errorhandler(Exception)
    def handle_exception(e):
        if hasattr(e, 'code') and isinstance(e.code, int):
            status_code = e.code
        elif hasattr(e, 'status_code'):
            status_code = e.status_code
        else:
            status_code = 500

        if status_code >= 500:
            logger.error("Unhandled exception", error=str(e), exc_info=True)

        response = jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        })
        response.status_code = status_code
        return response

    return app
