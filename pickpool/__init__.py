import logging
import os

import redis
from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
socketio = SocketIO()
cache = Cache()
migrate = Migrate()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    if request.headers.get("X-Forwarded-For"):
        # Leftmost entry is the original client
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


def _redis_url_if_available():
    """Return the configured Redis URL when a server answers there"""
    redis_url = os.environ.get("REDIS_URL") or os.environ.get("CACHE_REDIS_URL")
    if not redis_url:
        return None

    try:
        redis.Redis.from_url(redis_url).ping()
    except redis.exceptions.RedisError as e:
        logger.warning(f"Redis not available at {redis_url}: {e}")
        return None
    return redis_url


# Use Redis in production for shared rate limiting across multiple workers
limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
    storage_uri=_redis_url_if_available() or "memory://",
)


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    message_queue = None
    if not app.config.get("TESTING"):
        message_queue = _redis_url_if_available()

    socketio.init_app(
        app,
        cors_allowed_origins=os.environ.get("ALLOWED_ORIGINS", "*").split(","),
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE"),
        message_queue=message_queue,
    )

    # Setup logging
    from pickpool.utils.logging_config import setup_logging

    setup_logging(app)

    # Import and register blueprints
    from pickpool.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    from pickpool.routes.admin import bp as admin_bp

    app.register_blueprint(admin_bp, url_prefix="/admin")

    # Register error handlers
    register_error_handlers(app)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Initialize and start background reconciliation
    if not app.config.get("TESTING", False):
        from pickpool.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    # Register SocketIO handlers
    from pickpool import socketio_handlers  # noqa: F401 - imported for side effects

    return app


def register_error_handlers(app):
    """Register global JSON error handlers"""
    from pickpool.errors import PickPoolError

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.errorhandler(PickPoolError)
    def handle_pick_pool_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{error.__class__.__name__}: {error.message}")
        else:
            app.logger.warning(
                f"{error.__class__.__name__}: {error.message} - Path: {request.path}"
            )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"error": "Bad request"}), 400

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


from pickpool import models  # noqa: F401, E402 - imported for model registration
