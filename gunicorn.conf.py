"""
Gunicorn configuration for production
"""
import multiprocessing
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"
workers = int(os.getenv('WEB_CONCURRENCY', multiprocessing.cpu_count() * 2 + 1))
# Threaded workers: async views run their own event loop per request
threads = int(os.getenv('GUNICORN_THREADS', '4'))
worker_class = 'gthread'
# Must stay above PROVIDER_TIMEOUT_SECONDS
timeout = 60
graceful_timeout = 30

keepalive = 5
max_requests = 1000
max_requests_jitter = 50

accesslog = '-'
errorlog = '-'
loglevel = 'info'

keyfile = os.getenv('SSL_KEYFILE')
certfile = os.getenv('SSL_CERTFILE')


def on_starting(server):
    server.log.info("Starting campaign payments service")


def on_exit(server):
    server.log.info("Shutting down campaign payments service")


def worker_abort(worker):
    worker.log.warning(f"Worker {worker.pid} aborted")


def post_fork(server, worker):
    server.log.info(f"Worker {worker.pid} started")

    if os.getenv('SENTRY_DSN'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            environment=os.getenv('FLASK_ENV', 'production'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=float(os.getenv('SENTRY_TRACES_SAMPLE_RATE', '0.1'))
        )
