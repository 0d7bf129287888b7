import os
from dotenv import load_dotenv

# .env must be loaded before the class body reads the environment
load_dotenv()


class Config:
    # Environment
    PRODUCTION = os.getenv("FLASK_ENV") == "production" or os.getenv("PRODUCTION") == "1"
    TESTING = False

    # Security
    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-me-default-secret')
    if PRODUCTION and SECRET_KEY == 'change-me-default-secret':
        raise ValueError("⚠️ Default SECRET_KEY detected in production!")

    # CORS and rate limiting
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    RATE_LIMIT_APP = os.environ.get('RATE_LIMIT_APP', '300/hour')
    RATE_LIMIT_PAYMENT = os.environ.get('RATE_LIMIT_PAYMENT', '10/minute')

    # Cache
    CACHE_TYPE = os.environ.get('CACHE_TYPE', 'SimpleCache')
    CACHE_REDIS_URL = os.environ.get('CACHE_REDIS_URL')
    CACHE_DEFAULT_TIMEOUT = 30

    # Card gateway
    CARD_API_URL = os.environ.get('CARD_API_URL', 'https://api.triptoverse.xyz')
    CARD_API_KEY = os.environ.get('CARD_API_KEY')
    CARD_WEBHOOK_SECRET = os.environ.get('CARD_WEBHOOK_SECRET')

    # QR provider
    QR_API_URL = os.environ.get('QR_API_URL', 'https://dev-sip.mc4.com.bo:8443')
    QR_API_KEY = os.environ.get('QR_API_KEY', '')
    QR_API_KEY_SERVICE = os.environ.get('QR_API_KEY_SERVICE', '')
    QR_USERNAME = os.environ.get('QR_USERNAME', '')
    QR_PASSWORD = os.environ.get('QR_PASSWORD', '')
    QR_CALLBACK_USERNAME = os.environ.get('QR_CALLBACK_USERNAME')
    QR_CALLBACK_PASSWORD = os.environ.get('QR_CALLBACK_PASSWORD')
    QR_ALIAS_PREFIX = os.environ.get('QR_ALIAS_PREFIX', 'DONA')
    QR_CURRENCY = os.environ.get('QR_CURRENCY', 'BOB')

    # Outbound provider calls
    PROVIDER_TIMEOUT_SECONDS = float(os.environ.get('PROVIDER_TIMEOUT_SECONDS', '12'))
    PROVIDER_MAX_RETRIES = int(os.environ.get('PROVIDER_MAX_RETRIES', '2'))

    # Notifications (fire-and-forget)
    NOTIFICATION_WEBHOOK_URL = os.environ.get('NOTIFICATION_WEBHOOK_URL')

    if PRODUCTION:
        if not CARD_WEBHOOK_SECRET:
            raise ValueError("⚠️ CARD_WEBHOOK_SECRET not configured in production!")
        if not CARD_API_KEY:
            raise ValueError("⚠️ CARD_API_KEY not configured in production!")

    # Public site URL
    SITE_URL = os.environ.get('SITE_URL', 'http://localhost:5000')

    # Database
    if PRODUCTION:
        SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")
        if not SQLALCHEMY_DATABASE_URI:
            raise ValueError("⚠️ DATABASE_URL not configured in production!")
    else:
        SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///campaign_payments.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Engine options: SSL only in production
    if PRODUCTION:
        SQLALCHEMY_ENGINE_OPTIONS = {
            'pool_size': 5,
            'max_overflow': 5,
            'pool_timeout': 30,
            'pool_recycle': 1800,
            'pool_pre_ping': True,
            'isolation_level': 'READ COMMITTED',
            'connect_args': {
                'sslmode': 'require',
                'options': '-c timezone=UTC'
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {
            'pool_pre_ping': True
        }

    # Logging
    LOGGING_CONFIG = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            },
            'json': {
                '()': 'pythonjsonlogger.jsonlogger.JsonFormatter',
                'format': '%(asctime)s %(name)s %(levelname)s %(message)s'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'default' if not PRODUCTION else 'json',
                'stream': 'ext://sys.stdout',
                'level': 'INFO'
            },
            'file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'filename': 'app.log',
                'maxBytes': 1024 * 1024,  # 1 MB
                'backupCount': 3,
                'formatter': 'json',
                'level': 'INFO'
            }
        },
        'root': {
            'level': 'INFO',
            'handlers': ['console', 'file'] if PRODUCTION else ['console']
        }
    }


class TestConfig(Config):
    TESTING = True
    PRODUCTION = False
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    CACHE_TYPE = 'SimpleCache'
    RATELIMIT_ENABLED = False
    CARD_API_URL = 'https://card.test'
    CARD_API_KEY = 'card-test-key'
    CARD_WEBHOOK_SECRET = 'whsec_test'
    QR_API_URL = 'https://qr.test'
    QR_CALLBACK_USERNAME = 'qr-user'
    QR_CALLBACK_PASSWORD = 'qr-pass'
    PROVIDER_TIMEOUT_SECONDS = 1.0
    PROVIDER_MAX_RETRIES = 1
    NOTIFICATION_WEBHOOK_URL = None
