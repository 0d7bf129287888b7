"""
Production-only wiring (proxy headers, compression, detailed health check)
and input sanitizing helpers used by the routes.
"""
from flask import current_app
from flask_compress import Compress
from werkzeug.middleware.proxy_fix import ProxyFix
from sqlalchemy import text
import bleach
import time
from security import logger

compress = Compress()


def init_production(app):
    """Runs only when PRODUCTION is set; /healthz is registered here."""
    # Behind the platform's TLS-terminating proxy
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

    compress.init_app(app)

    @app.route('/healthz')
    def healthcheck():
        checks = {
            'database': check_database(),
            'qr_provider': check_qr_provider(),
            'card_gateway': check_card_gateway(),
            'memory': check_memory(),
            'uptime': get_uptime()
        }

        status = 200 if all(v['status'] == 'ok' for v in checks.values()) else 503
        return {'status': 'healthy' if status == 200 else 'unhealthy', 'checks': checks}, status


def sanitize_input(data):
    """Strips markup from user supplied text (donation messages, cancel reasons)."""
    if isinstance(data, str):
        return bleach.clean(data, strip=True)
    elif isinstance(data, dict):
        return {k: sanitize_input(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [sanitize_input(i) for i in data]
    return data


def check_database():
    from database import db
    try:
        started = time.perf_counter()
        db.session.execute(text('SELECT 1'))
        return {'status': 'ok', 'latency_ms': round((time.perf_counter() - started) * 1000, 2)}
    except Exception as e:
        logger.error("database_check_failed", error=str(e))
        return {'status': 'error', 'error': str(e)}


def check_qr_provider():
    """Configuration only, no provider call."""
    config = current_app.config
    missing = [key for key in ('QR_API_URL', 'QR_API_KEY_SERVICE', 'QR_USERNAME', 'QR_CALLBACK_USERNAME')
               if not config.get(key)]
    if missing:
        return {'status': 'error', 'missing': missing}
    return {'status': 'ok'}


def check_card_gateway():
    config = current_app.config
    if not config.get('CARD_API_KEY') or not config.get('CARD_WEBHOOK_SECRET'):
        return {'status': 'error', 'error': 'card gateway credentials missing'}
    return {'status': 'ok'}


def check_memory():
    import psutil
    try:
        process = psutil.Process()
        memory_info = process.memory_info()
        return {
            'status': 'ok',
            'rss_mb': memory_info.rss / 1024 / 1024,
            'vms_mb': memory_info.vms / 1024 / 1024
        }
    except Exception as e:
        logger.error("memory_check_failed", error=str(e))
        return {'status': 'error', 'error': str(e)}


def get_uptime():
    try:
        uptime = time.time() - current_app.start_time
        return {
            'status': 'ok',
            'uptime_seconds': int(uptime)
        }
    except Exception as e:
        logger.error("uptime_check_failed", error=str(e))
        return {'status': 'error', 'error': str(e)}
