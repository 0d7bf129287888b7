"""
Security setup shared by every blueprint: CORS, rate limiting, caching and
response headers. Also owns the structured logger used by routes.
"""
from flask import request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_caching import Cache
import structlog
import logging.config
from config import Config

logging.config.dictConfig(Config.LOGGING_CONFIG)
logger = structlog.get_logger()

cache = Cache()

# Webhooks are exempted per view; provider retries must never hit a 429
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[Config.RATE_LIMIT_APP],
    storage_uri="memory://"
)


def init_security(app):
    """Binds CORS, cache and limiter to the app and adds the security headers."""
    CORS(app, origins=app.config.get('CORS_ORIGINS', Config.CORS_ORIGINS))

    cache_config = {
        'CACHE_TYPE': app.config.get('CACHE_TYPE', Config.CACHE_TYPE),
        'CACHE_DEFAULT_TIMEOUT': app.config.get('CACHE_DEFAULT_TIMEOUT', Config.CACHE_DEFAULT_TIMEOUT)
    }
    if cache_config['CACHE_TYPE'] in ('redis', 'RedisCache'):
        cache_config['CACHE_REDIS_URL'] = app.config.get('CACHE_REDIS_URL')

    cache.init_app(app, config=cache_config)

    limiter.init_app(app)

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['Cache-Control'] = 'no-store'
        return response

    if app.config.get('PRODUCTION'):
        @app.before_request
        def log_request_info():
            logger.info(
                "request_started",
                path=request.path,
                method=request.method,
                remote_addr=request.remote_addr,
                webhook_id=request.headers.get('X-Webhook-Id')
            )

        @app.after_request
        def log_response_info(response):
            logger.info(
                "request_finished",
                path=request.path,
                method=request.method,
                status=response.status_code
            )
            return response

    logger.info("security_initialized",
                cors_origins=app.config.get('CORS_ORIGINS'),
                cache_type=cache_config['CACHE_TYPE'],
                rate_limit=Config.RATE_LIMIT_APP)

    return app
