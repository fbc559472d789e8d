# backend/repairdesk/__init__.py
import logging

from flask import Flask

from .config import Config
from .events import LoggingEventSink
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))
    logging.getLogger("repairdesk").setLevel(app.logger.level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Fire-and-forget event sink; tests and deployments may replace it
    app.extensions.setdefault("event_sink", LoggingEventSink())

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.customers import customers_bp
    from .routes.tickets import tickets_bp
    from .routes.parts import parts_bp
    from .routes.returns import returns_bp
    from .routes.finance import finance_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(tickets_bp)
    app.register_blueprint(parts_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(finance_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
