# backend/fieldstock/__init__.py
from __future__ import annotations

from flask import Flask

from .config import Config
from .extensions import db, migrate, enable_sqlite_immediate_transactions


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    if app.config.get("SQLITE_BEGIN_IMMEDIATE") and app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        with app.app_context():
            enable_sqlite_immediate_transactions(db.engine)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.receipts import receipts_bp
    from .routes.transfers import transfers_bp
    from .routes.consumptions import consumptions_bp
    from .routes.returns import returns_bp
    from .routes.requests import requests_bp
    from .routes.stock import stock_bp
    from .routes.units import units_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(receipts_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(consumptions_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(units_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
