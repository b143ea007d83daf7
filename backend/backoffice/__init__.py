# backend/backoffice/__init__.py
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate, configure_sqlite_transactions



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

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        with app.app_context():
            configure_sqlite_transactions(db.engine)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.sellers import sellers_bp
    from .routes.customers import customers_bp
    from .routes.bills import bills_bp
    from .routes.parcels import parcels_bp
    from .routes.returns import returns_bp
    from .routes.sales import sales_bp
    from .routes.purchase_batches import purchase_batches_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(sellers_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(bills_bp)
    app.register_blueprint(parcels_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(purchase_batches_bp)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        app.logger.exception("Unhandled error")
        db.session.rollback()
        if app.config.get("EXPOSE_INTERNAL_ERRORS"):
            return jsonify({"error": str(error)}), 500
        return jsonify({"error": "Internal server error"}), 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
