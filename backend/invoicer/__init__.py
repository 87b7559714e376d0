# backend/invoicer/__init__.py
import logging

from flask import Flask, request, jsonify, current_app
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import ServiceError
from .extensions import db, migrate, identity, dispatcher


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        if exc.status_code >= 500:
            current_app.logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        # Unknown routes, wrong methods and the like keep their status
        if isinstance(exc, HTTPException):
            return jsonify({"error": exc.description}), exc.code
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    identity.init_app(app)
    dispatcher.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.session import session_bp
    from .routes.settings import settings_bp
    from .routes.customers import customers_bp
    from .routes.products import products_bp
    from .routes.documents import invoices_bp, offers_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(session_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(offers_bp)

    register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
