"""Tests for promptloop.core.vault."""

import base64

import pytest

from promptloop.core.errors import ConfigError, DecryptionError, DeliveryError
from promptloop.core.vault import SecretVault


@pytest.fixture
def vault():
    return SecretVault("test-secret")


def test_round_trip(vault):
    payload = vault.encrypt("https://discord.com/api/webhooks/1/abc")
    assert payload.count(":") == 2
    assert vault.decrypt(payload) == "https://discord.com/api/webhooks/1/abc"


def test_round_trip_unicode(vault):
    assert vault.decrypt(vault.encrypt("şifre ✓")) == "şifre ✓"


def test_round_trip_empty_string(vault):
    payload = vault.encrypt("")
    assert payload.endswith(":")
    assert vault.decrypt(payload) == ""


def test_random_iv(vault):
    assert vault.encrypt("same") != vault.encrypt("same")


def test_segment_layout(vault):
    iv, tag, ciphertext = (base64.b64decode(p) for p in vault.encrypt("abc").split(":"))
    assert len(iv) == 12
    assert len(tag) == 16
    assert len(ciphertext) == 3


def test_single_bit_flip_fails(vault):
    iv, tag, ciphertext = vault.encrypt("chat-12345").split(":")
    raw = bytearray(base64.b64decode(ciphertext))
    raw[0] ^= 0x01
    tampered = ":".join([iv, tag, base64.b64encode(bytes(raw)).decode()])
    with pytest.raises(DecryptionError):
        vault.decrypt(tampered)


def test_tampered_tag_fails(vault):
    iv, tag, ciphertext = vault.encrypt("chat-12345").split(":")
    raw = bytearray(base64.b64decode(tag))
    raw[-1] ^= 0x80
    with pytest.raises(DecryptionError):
        vault.decrypt(":".join([iv, base64.b64encode(bytes(raw)).decode(), ciphertext]))


def test_wrong_key_fails(vault):
    payload = vault.encrypt("token")
    with pytest.raises(DecryptionError):
        SecretVault("other-secret").decrypt(payload)


@pytest.mark.parametrize("payload", ["", "abc", "a:b", "a:b:c:d", "::", "AAAA::AAAA", "!!!!:AAAA:AAAA"])
def test_malformed_payload(vault, payload):
    with pytest.raises(DecryptionError):
        vault.decrypt(payload)


def test_decryption_error_is_delivery_error():
    assert issubclass(DecryptionError, DeliveryError)


def test_empty_secret():
    with pytest.raises(ConfigError):
        SecretVault("")
