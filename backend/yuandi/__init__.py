# backend/yuandi/__init__.py
from flask import Flask

from .config import Config, engine_options_for
from .extensions import db, migrate
from .services.settings_service import SettingsStore, EXTENSION_KEY


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.from_mapping(test_config)

    # Driver timeouts must be in place before the engine is created
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options_for(app.config["SQLALCHEMY_DATABASE_URI"], app.config["DB_STATEMENT_TIMEOUT_MS"]),
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    app.extensions[EXTENSION_KEY] = SettingsStore()

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.orders import orders_bp
    from .routes.cashbook import cashbook_bp
    from .routes.settings import settings_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(cashbook_bp)
    app.register_blueprint(settings_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
