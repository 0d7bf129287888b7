"""
Webhook signature verification.

Two header formats are accepted:

* legacy: the header is the hex HMAC-SHA256 of the raw body;
* timestamped: ``t=<ts>,v1=<hex>`` where the digest covers ``"{ts}.{raw body}"``.

The digest is always computed over the exact bytes received. Parsing the
JSON and re-serializing it changes key order and whitespace and will not
match what the provider signed.
"""
import hashlib
import hmac
import logging

from errors import SignatureInvalid

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ('X-Webhook-Signature', 'X-Signature')


def _hmac_hex(secret, payload):
    return hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()


def _as_bytes(raw_body):
    if isinstance(raw_body, str):
        return raw_body.encode('utf-8')
    return bytes(raw_body)


def parse_timestamped(header_value):
    """Splits ``t=...,v1=...`` into (timestamp, signature); None when a part is missing."""
    parts = {}
    for item in header_value.split(','):
        key, sep, value = item.strip().partition('=')
        if sep and key and key not in parts:
            parts[key] = value.strip()
    timestamp = parts.get('t')
    signature = parts.get('v1')
    if not timestamp or not signature:
        return None
    return timestamp, signature


def verify(raw_body, header_value, secret):
    """Returns True only when ``header_value`` is a valid signature of ``raw_body``."""
    try:
        if not header_value or not secret or raw_body is None:
            return False

        body = _as_bytes(raw_body)
        header_value = header_value.strip()

        if 't=' in header_value and 'v1=' in header_value:
            parsed = parse_timestamped(header_value)
            if not parsed:
                return False
            timestamp, received = parsed
            expected = _hmac_hex(secret, timestamp.encode('utf-8') + b'.' + body)
        else:
            received = header_value
            expected = _hmac_hex(secret, body)

        return hmac.compare_digest(expected, received.lower())
    except Exception as e:
        logger.warning(f"Signature verification error: {e}")
        return False


def require_valid_signature(raw_body, headers, secret):
    """Reads the signature header and raises SignatureInvalid on any mismatch."""
    header_value = None
    for name in SIGNATURE_HEADERS:
        header_value = headers.get(name)
        if header_value:
            break

    if not verify(raw_body, header_value, secret):
        raise SignatureInvalid("Invalid signature", has_header=bool(header_value))
    return True


def sign_legacy(raw_body, secret):
    return _hmac_hex(secret, _as_bytes(raw_body))


def sign_timestamped(raw_body, secret, timestamp):
    digest = _hmac_hex(secret, f"{timestamp}.".encode('utf-8') + _as_bytes(raw_body))
    return f"t={timestamp},v1={digest}"
