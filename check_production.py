# check_production.py
import os
from config import Config


def check_secret_key():
    print("Checking secret key...")

    secret_key = Config.SECRET_KEY
    if not secret_key or secret_key == 'change-me-default-secret':
        print("SECRET_KEY is missing or still the default")
        print("   Generate one with: python -c 'import secrets; print(secrets.token_hex(32))'")
        return False

    if len(secret_key) < 32:
        print("SECRET_KEY is too short (32 characters minimum)")
        return False

    print("SECRET_KEY OK")
    return True


def check_database():
    print("Checking database...")

    database_url = Config.SQLALCHEMY_DATABASE_URI
    if not database_url:
        print("DATABASE_URL not configured")
        return False

    if database_url.startswith(('postgresql', 'postgres')):
        print("PostgreSQL configured")
        return True
    if database_url.startswith('sqlite'):
        # No row locks on SQLite: concurrent webhook deliveries are serialized by the file lock only
        print("Using SQLite (development only)")
        return not Config.PRODUCTION
    print("Unknown database backend")
    return False


def check_card_gateway():
    print("Checking card gateway...")

    ok = True
    if not Config.CARD_API_KEY:
        print("CARD_API_KEY not configured")
        ok = False
    if not Config.CARD_WEBHOOK_SECRET:
        print("CARD_WEBHOOK_SECRET not configured: every card webhook will be rejected")
        ok = False
    if ok:
        print(f"Card gateway: {Config.CARD_API_URL}")
    return ok


def check_qr_provider():
    print("Checking QR provider...")

    missing = [name for name in ('QR_API_KEY', 'QR_API_KEY_SERVICE', 'QR_USERNAME', 'QR_PASSWORD',
                                 'QR_CALLBACK_USERNAME', 'QR_CALLBACK_PASSWORD')
               if not getattr(Config, name)]
    if missing:
        print(f"Missing QR settings: {', '.join(missing)}")
        return False

    if 'dev-' in (Config.QR_API_URL or ''):
        print(f"QR_API_URL points at a development host: {Config.QR_API_URL}")
        return False

    print(f"QR provider: {Config.QR_API_URL}")
    return True


def check_urls():
    print("Checking URLs...")

    site_url = os.environ.get('SITE_URL', '')
    if Config.PRODUCTION and not site_url.startswith('https://'):
        print("SITE_URL must be an https URL in production")
        return False
    print(f"SITE_URL: {Config.SITE_URL}")
    return True


if __name__ == '__main__':
    print("CONFIGURATION CHECK")
    print("=" * 50)

    results = {
        'secret': check_secret_key(),
        'database': check_database(),
        'card': check_card_gateway(),
        'qr': check_qr_provider(),
        'urls': check_urls(),
    }

    print("=" * 50)

    if all(results.values()):
        print("Everything is configured")
    else:
        failed = [name for name, ok in results.items() if not ok]
        print(f"Fix the settings above: {', '.join(failed)}")
        raise SystemExit(1)
