# backend/fuelrecon/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate
from .time_utils import SystemClock


def create_app(config_overrides: dict | None = None, *, clock=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Every "now" in the engine is read through this clock
    app.extensions["clock"] = clock or SystemClock()

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.days import days_bp
    from .routes.shifts import shifts_bp
    from .routes.transactions import transactions_bp
    from .routes.audit import audit_bp
    from .routes.anomalies import anomalies_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(days_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(anomalies_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
