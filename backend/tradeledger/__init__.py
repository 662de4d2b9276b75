# backend/tradeledger/__init__.py
import logging
import sys

from flask import Flask, jsonify
from werkzeug.exceptions import InternalServerError

from .config import Config, engine_options_for
from .extensions import db, migrate

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(app: Flask) -> logging.Logger:
    """Attach one console handler to the package logger (services log under it)."""
    logger = logging.getLogger(__name__)
    logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(handler)
    return logger


def register_error_handlers(app: Flask) -> None:
    from .services.errors import LedgerError
    from .validation import ConflictError, ValidationError

    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(ConflictError)
    def handle_conflict(exc: ConflictError):
        return jsonify({"error": "CONFLICT", "message": str(exc)}), 409

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({"error": "VALIDATION_ERROR", "message": str(exc)}), 400

    @app.errorhandler(InternalServerError)
    def handle_internal_error(exc: InternalServerError):
        # Flask has already logged the traceback and the request's
        # session is rolled back on teardown.
        return jsonify({"error": "Internal server error"}), 500


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options_for(
        app.config["SQLALCHEMY_DATABASE_URI"],
        app.config.get("SQLALCHEMY_ENGINE_OPTIONS"),
        app.config["SQLITE_BUSY_TIMEOUT"],
    )

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.customers import customers_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(reports_bp)

    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
