# app.py
"""
Flask Application Factory for the Blog Notification Service

Provides:
- Blog notification endpoints (direct SMTP or queued via QStash)
- Signature-verified queue delivery webhook
- Member and program listings from the hosted data store
- Logging, JSON error handling and health checks
"""

import sys
import logging
import logging.handlers
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import redis

from api.directory import directory_bp
from api.notifications import notifications_bp
from config.settings import Config
from core.exceptions import ConfigurationError, NotifierError
from core.security_manager import DeliveryLedger
from core.template_engine import BlogEmailRenderer
from middleware.security import security_headers
from services.data_store import build_directory
from services.dispatch import build_gateway
from services.notifications import BlogNotifier

logger = logging.getLogger(__name__)


def setup_logging(app: Flask) -> None:
    """
    Configure application logging

    - Stream handler with a detailed formatter
    - Optional rotating file handler when LOG_FILE is set
    - Quiet werkzeug outside debug mode
    """
    app.logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    app.logger.setLevel(log_level)

    # pytest owns the root handlers under test
    if app.testing:
        return

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(detailed_formatter)
    stream_handler.setLevel(log_level)
    root_logger.handlers = [stream_handler]

    log_file = app.config.get('LOG_FILE')
    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('httpx').setLevel(logging.WARNING)


def create_redis_client(config: Config) -> redis.Redis:
    """Redis client for the delivery ledger; an outage only disables dedupe"""
    client = redis.Redis.from_url(
        config.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
    )
    try:
        client.ping()
        logger.info("Redis delivery ledger connected")
    except redis.RedisError as e:
        logger.warning(f"Redis delivery ledger unavailable: {e}")
    return client


def build_notifier(config: Config) -> BlogNotifier:
    """Construct the production service graph from configuration"""
    return BlogNotifier(
        gateway=build_gateway(config),
        directory=build_directory(config),
        renderer=BlogEmailRenderer(site_url=config.SITE_URL, brand_name=config.BRAND_NAME),
        ledger=DeliveryLedger(create_redis_client(config), ttl_seconds=config.DELIVERY_LEDGER_TTL),
        public_base_url=config.PUBLIC_BASE_URL,
        sanitize=config.SANITIZE_BLOG_CONTENT,
    )


def configure_error_handlers(app: Flask) -> None:
    """
    Convert domain and HTTP errors into JSON responses
    """
    @app.errorhandler(NotifierError)
    def handle_notifier_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__} on {request.path}: {error}")
        else:
            app.logger.warning(f"{type(error).__name__} on {request.path}: {error}")
        return jsonify({'success': False, 'error': str(error)}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'success': False,
            'error': error.name,
            'status_code': error.code
        }), error.code

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle unexpected exceptions"""
        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'An unexpected error occurred'
        }), 500


def configure_health_checks(app: Flask) -> None:
    @app.route('/')
    def index():
        return jsonify({'status': 'ok', 'message': 'CodeSapiens Email API is running'})

    @app.route('/health')
    def health_check():
        """Basic health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': app.config.get('VERSION', '1.0.0')
        })


def configure_request_middleware(app: Flask) -> None:
    @app.before_request
    def before_request():
        g.start_time = datetime.now(timezone.utc)

    @app.after_request
    def after_request(response):
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (datetime.now(timezone.utc) - g.start_time).total_seconds() * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 5000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def create_app(config: Optional[Config] = None, notifier: Optional[BlogNotifier] = None) -> Flask:
    """
    Flask application factory

    Args:
        config: settings object; read from the environment when omitted
        notifier: prebuilt service graph; built from config when omitted

    Raises:
        ConfigurationError: required settings are missing
    """
    config = config or Config()
    config.validate()

    app = Flask(__name__)
    app.config.update(config.to_flask())

    setup_logging(app)
    app.logger.info("Starting blog notification service")

    CORS(app, origins=config.CORS_ORIGINS)

    app.extensions['notifier'] = notifier or build_notifier(config)

    app.register_blueprint(notifications_bp, url_prefix='/api')
    app.register_blueprint(directory_bp, url_prefix='/api')

    configure_error_handlers(app)
    configure_health_checks(app)
    configure_request_middleware(app)

    app.logger.info("Flask application factory completed successfully")
    return app


def main() -> int:
    try:
        config = Config()
        app = create_app(config)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"ERROR: {e}")
        return 1

    app.run(host='0.0.0.0', port=config.PORT)
    return 0


if __name__ == '__main__':
    sys.exit(main())
