# backend/tripflow/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Hooks called with (trip, event) on dispatch and delivery
    app.extensions.setdefault("trip_notifiers", [])

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sequences import sequences_bp
    from .routes.orders import orders_bp
    from .routes.trips import trips_bp
    from .routes.memos import memos_bp
    from .routes.wages import wages_bp
    from .routes.ledger import ledger_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sequences_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(trips_bp)
    app.register_blueprint(memos_bp)
    app.register_blueprint(wages_bp)
    app.register_blueprint(ledger_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
