import hashlib
import hmac

import pytest

from errors import SignatureInvalid
from services.signature import (
    parse_timestamped,
    require_valid_signature,
    sign_legacy,
    sign_timestamped,
    verify,
)

SECRET = "whsec_test"
BODY = b'{"event":"payment.completed","data":{"paymentId":"pay_1","amount":10000}}'


def test_legacy_signature_is_hmac_of_raw_body():
    expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert sign_legacy(BODY, SECRET) == expected
    assert verify(BODY, expected, SECRET)


def test_uppercase_hex_is_accepted():
    assert verify(BODY, sign_legacy(BODY, SECRET).upper(), SECRET)


def test_tampered_body_is_rejected():
    signature = sign_legacy(BODY, SECRET)
    assert not verify(BODY.replace(b"10000", b"99999"), signature, SECRET)


def test_reserialized_json_is_rejected():
    signature = sign_legacy(BODY, SECRET)
    assert not verify(b'{"data": {"amount": 10000, "paymentId": "pay_1"}, "event": "payment.completed"}',
                      signature, SECRET)


def test_wrong_secret_is_rejected():
    assert not verify(BODY, sign_legacy(BODY, "other"), SECRET)


def test_timestamped_signature_covers_timestamp_and_body():
    header = sign_timestamped(BODY, SECRET, 1700000000)
    digest = hmac.new(SECRET.encode(), b"1700000000." + BODY, hashlib.sha256).hexdigest()
    assert header == f"t=1700000000,v1={digest}"
    assert verify(BODY, header, SECRET)


def test_timestamped_with_changed_timestamp_is_rejected():
    header = sign_timestamped(BODY, SECRET, 1700000000)
    forged = header.replace("t=1700000000", "t=1700000001")
    assert not verify(BODY, forged, SECRET)


@pytest.mark.parametrize("header", [None, "", "t=123", "v1=abc", "t=,v1=", "not-hex"])
def test_missing_or_malformed_header_is_rejected(header):
    assert not verify(BODY, header, SECRET)


def test_missing_secret_rejects_everything():
    assert not verify(BODY, sign_legacy(BODY, SECRET), "")
    assert not verify(BODY, sign_legacy(BODY, SECRET), None)


def test_parse_timestamped():
    assert parse_timestamped("t=1, v1=abc") == ("1", "abc")
    assert parse_timestamped("v1=abc") is None


def test_require_valid_signature_reads_fallback_header():
    headers = {"X-Signature": sign_legacy(BODY, SECRET)}
    assert require_valid_signature(BODY, headers, SECRET) is True


def test_require_valid_signature_raises():
    with pytest.raises(SignatureInvalid) as excinfo:
        require_valid_signature(BODY, {"X-Webhook-Signature": "deadbeef"}, SECRET)
    assert excinfo.value.status_code == 401
