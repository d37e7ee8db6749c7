# backend/stockledger/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate, read_cache


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    read_cache.configure(ttl_seconds=app.config.get("READ_CACHE_TTL_SECONDS"))

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # The offline queue is local to this process and never migrated
    with app.app_context():
        db.create_all(bind_key="offline")

    # Register blueprints
    from .routes.system import system_bp
    from .routes.items import items_bp
    from .routes.purchases import purchases_bp
    from .routes.sales import sales_bp
    from .routes.counterparties import vendors_bp, customers_bp
    from .routes.reconciliation import reconciliation_bp
    from .routes.offline import offline_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(items_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(vendors_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(reconciliation_bp)
    app.register_blueprint(offline_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
