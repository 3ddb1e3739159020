# backend/order_gate/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Process-local admission state shared by every request
    from .services.rate_limit_service import RateLimiter
    from .services.intake_service import build_intake_service
    from .services.payment_service import UnconfiguredGateway

    rate_limiter = RateLimiter(
        window_seconds=app.config["RATE_LIMIT_WINDOW_SECONDS"],
        max_requests=app.config["RATE_LIMIT_MAX_REQUESTS"],
    )
    app.extensions["rate_limiter"] = rate_limiter
    app.extensions["order_intake"] = build_intake_service(app, rate_limiter)
    app.extensions.setdefault("payment_gateway", UnconfiguredGateway())

    # Register blueprints
    from .routes.system import system_bp
    from .routes.public import public_bp
    from .routes.orders import orders_bp
    from .routes.security import security_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(security_bp)
    app.register_blueprint(inventory_bp)

    @app.after_request
    def add_cors_headers(response):
        # Landing pages live on arbitrary storefront domains
        if request.path.startswith("/api/public/"):
            origin = request.headers.get("Origin")
            if origin:
                response.headers["Access-Control-Allow-Origin"] = origin
                response.headers["Vary"] = "Origin"
                response.headers["Access-Control-Allow-Headers"] = "Content-Type"
                response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
