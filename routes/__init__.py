from .webhook import webhook_bp, card_webhook
from .payment_routes import payment_bp

# Paths the card gateway was configured with before /webhook/card existed
CARD_WEBHOOK_ALIASES = ('/api/webhook', '/api/payment/webhook')


def register_routes(app):
    app.register_blueprint(webhook_bp)
    app.register_blueprint(payment_bp)
    for path in CARD_WEBHOOK_ALIASES:
        app.add_url_rule(path, endpoint=f"card_webhook{path.replace('/', '_')}", view_func=card_webhook, methods=['POST'])
