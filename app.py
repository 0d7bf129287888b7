from flask import Flask, jsonify
from sqlalchemy import text
from config import Config
from database import db, init_db
from errors import PaymentError
from routes import register_routes
from security import init_security, logger
from production import init_production
from services.notifications import NotificationDispatcher
import os
import time


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Uptime for health checks
    app.start_time = time.time()

    init_db(app)

    # CORS, rate limit, cache
    init_security(app)

    if app.config.get('PRODUCTION'):
        init_production(app)

    app.extensions['notifier'] = NotificationDispatcher(app.config.get('NOTIFICATION_WEBHOOK_URL'))

    register_routes(app)

    @app.errorhandler(PaymentError)
    def handle_payment_error(error):
        if error.status_code >= 500:
            logger.error("payment_error", error=error.message, status=error.status_code, **error.context)
        else:
            logger.warning("payment_error", error=error.message, status=error.status_code, **error.context)
        return jsonify(error.to_dict()), error.status_code

    @app.route('/health')
    def health():
        try:
            db.session.execute(text('SELECT 1'))
            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'environment': 'production' if app.config.get('PRODUCTION') else 'development',
                'uptime': f"{time.time() - app.start_time:.2f}s"
            })
        except Exception as e:
            return jsonify({'status': 'unhealthy', 'error': str(e)}), 500

    @app.route('/api/status')
    def api_status():
        return jsonify({
            'status': 'online',
            'service': 'campaign-payments',
            'version': '1.0.0',
            'payment_methods': ['card', 'qr']
        })

    return app


app = create_app()

if os.environ.get('SEED_SAMPLE_DATA'):
    from init_db import init_sample_data
    with app.app_context():
        init_sample_data()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = not app.config.get('PRODUCTION')
    app.run(host='0.0.0.0', port=port, debug=debug)
