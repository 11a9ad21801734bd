import hashlib
import hmac
import json
import logging

import httpx
import pytest

from conftest import make_request
from supamind.config import Settings, WebhookSecurityMode
from supamind.errors import ConfigurationError
from supamind.security.webhook import (
    DISABLED_WARNING,
    OVERRIDDEN_WARNING,
    WebhookAuthenticator,
    create_signed_webhook_request,
    generate_hmac_signature,
    serialize_payload,
    timing_safe_equal,
    validate_webhook_request,
    verify_hmac_signature,
)

SECRET = "s3cr3t"
PAYLOAD = '{"a":1}'
EXPECTED = hmac.new(SECRET.encode(), PAYLOAD.encode(), hashlib.sha256).hexdigest()


class CountingStr(str):
    """String that counts how many of its characters were visited."""

    visited = 0

    def __iter__(self):
        for char in str.__iter__(self):
            CountingStr.visited += 1
            yield char


def _tamper_last(signature: str) -> str:
    return signature[:-1] + ("0" if signature[-1] != "0" else "1")


def test_signature_is_lowercase_hex_sha256():
    signature = generate_hmac_signature(PAYLOAD, SECRET)
    assert signature == EXPECTED
    assert len(signature) == 64
    assert signature == signature.lower()


def test_signature_round_trips():
    assert verify_hmac_signature(PAYLOAD, generate_hmac_signature(PAYLOAD, SECRET), SECRET) is True


def test_any_changed_character_fails_verification():
    assert verify_hmac_signature(PAYLOAD, _tamper_last(EXPECTED), SECRET) is False
    assert verify_hmac_signature('{"a":2}', EXPECTED, SECRET) is False
    assert verify_hmac_signature(PAYLOAD, EXPECTED, "s3cr3T") is False


def test_uppercase_signature_is_rejected():
    assert verify_hmac_signature(PAYLOAD, EXPECTED.upper(), SECRET) is False


def test_verify_never_raises(caplog):
    caplog.set_level(logging.ERROR, logger="supamind.security.webhook")
    assert verify_hmac_signature(PAYLOAD, EXPECTED, None) is False  # type: ignore[arg-type]
    assert any(record.exc_info for record in caplog.records)


def test_timing_safe_equal_basic_cases():
    assert timing_safe_equal("abc", "abc") is True
    assert timing_safe_equal("abc", "abd") is False
    assert timing_safe_equal("abc", "abcd") is False
    assert timing_safe_equal("", "") is True


def test_timing_safe_equal_scans_every_character():
    CountingStr.visited = 0
    assert timing_safe_equal(CountingStr("x" + EXPECTED[1:]), EXPECTED) is False
    first_mismatch = CountingStr.visited

    CountingStr.visited = 0
    assert timing_safe_equal(CountingStr(_tamper_last(EXPECTED)), EXPECTED) is False
    last_mismatch = CountingStr.visited

    assert first_mismatch == last_mismatch == 64


def test_serialize_payload_is_compact_and_keeps_unicode():
    assert serialize_payload({"a": 1, "b": [1, 2]}) == '{"a":1,"b":[1,2]}'
    assert serialize_payload({"title": "café"}) == '{"title":"café"}'


async def test_missing_header_is_rejected_without_reading_body():
    request = make_request()

    response = await validate_webhook_request(request, SECRET)

    assert response.status_code == 401
    assert json.loads(response.body) == {"error": "Missing webhook signature"}


async def test_wrong_signature_is_rejected(caplog):
    caplog.set_level(logging.ERROR, logger="supamind.security.webhook")
    request = make_request({"x-webhook-signature": _tamper_last(EXPECTED)}, PAYLOAD.encode())

    response = await validate_webhook_request(request, SECRET)

    assert response.status_code == 401
    assert json.loads(response.body) == {"error": "Invalid webhook signature"}
    logged = [r for r in caplog.records if r.getMessage() == "Invalid webhook signature"]
    assert logged[0].signature_length == 64
    assert EXPECTED not in caplog.text


async def test_non_utf8_body_is_rejected():
    request = make_request({"x-webhook-signature": EXPECTED}, b"\xff\xfe")

    response = await validate_webhook_request(request, SECRET)

    assert response.status_code == 401


async def test_valid_signature_passes_and_body_stays_readable():
    request = make_request({"x-webhook-signature": EXPECTED}, PAYLOAD.encode())

    assert await validate_webhook_request(request, SECRET) is None
    assert await request.json() == {"a": 1}


async def test_custom_header_name():
    request = make_request({"x-signature": EXPECTED}, PAYLOAD.encode())

    assert await validate_webhook_request(request, SECRET, "x-signature") is None


async def test_create_signed_webhook_request_signs_the_sent_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    payload = {"notebook_id": "n-1", "title": "naïve"}
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await create_signed_webhook_request(
            "https://pipelines.example/audio",
            payload,
            SECRET,
            {"Authorization": "Bearer token", "Content-Type": "application/json; charset=utf-8"},
            client=client,
        )

    assert response.status_code == 202
    sent = seen[0]
    body = sent.content.decode("utf-8")
    assert body == serialize_payload(payload)
    assert sent.headers["x-webhook-signature"] == generate_hmac_signature(body, SECRET)
    assert sent.headers["authorization"] == "Bearer token"
    assert sent.headers["content-type"] == "application/json; charset=utf-8"


def test_authenticator_mode_follows_secret():
    assert WebhookAuthenticator("secret").mode is WebhookSecurityMode.ENFORCED
    assert WebhookAuthenticator(None).mode is WebhookSecurityMode.DISABLED
    assert WebhookAuthenticator("").mode is WebhookSecurityMode.DISABLED


def test_enforced_mode_without_secret_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        WebhookAuthenticator(None, mode=WebhookSecurityMode.ENFORCED)


async def test_disabled_mode_accepts_unsigned_callbacks_with_warning(caplog):
    caplog.set_level(logging.WARNING, logger="supamind.security.webhook")
    authenticator = WebhookAuthenticator(None)

    assert await authenticator.authenticate(make_request()) is None
    assert DISABLED_WARNING in caplog.text


async def test_disabled_mode_can_be_chosen_explicitly_with_a_secret():
    authenticator = WebhookAuthenticator(SECRET, mode=WebhookSecurityMode.DISABLED)

    assert await authenticator.authenticate(make_request()) is None


async def test_enforced_mode_requires_signature():
    authenticator = WebhookAuthenticator(SECRET)

    rejected = await authenticator.authenticate(make_request())
    accepted = await authenticator.authenticate(
        make_request({"x-webhook-signature": EXPECTED}, PAYLOAD.encode())
    )

    assert rejected.status_code == 401
    assert accepted is None


def test_authenticator_from_settings():
    settings = Settings(webhook_secret=SECRET, webhook_security_mode=WebhookSecurityMode.ENFORCED,
                        webhook_signature_header="x-signature")

    authenticator = WebhookAuthenticator.from_settings(settings)

    assert authenticator.mode is WebhookSecurityMode.ENFORCED
    assert authenticator.header_name == "x-signature"


async def test_disabled_mode_with_secret_names_the_override(caplog):
    caplog.set_level(logging.WARNING, logger="supamind.security.webhook")
    authenticator = WebhookAuthenticator(SECRET, mode=WebhookSecurityMode.DISABLED)

    await authenticator.authenticate(make_request())

    assert OVERRIDDEN_WARNING in caplog.text
    assert DISABLED_WARNING not in caplog.text


async def test_create_signed_webhook_request_with_custom_header():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await create_signed_webhook_request(
            "https://pipelines.example/chat", {"a": 1}, SECRET, client=client, header_name="x-signature"
        )

    assert seen[0].headers["x-signature"] == EXPECTED
    assert "x-webhook-signature" not in seen[0].headers
