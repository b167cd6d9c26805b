"""Tests for the TOTP engine."""
import base64
from datetime import datetime, timedelta, timezone
from urllib.parse import unquote

import pyotp
import pytest

from ledger.auth.totp import TOTPEngine

# 15s into a 30s step, so +/-30s lands squarely in the neighbouring steps
REFERENCE = datetime(2026, 3, 1, 12, 0, 15, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    return TOTPEngine(issuer="CashBook", valid_window=1)


@pytest.fixture
def secret():
    return pyotp.random_base32()


def _code_at(secret: str, when: datetime) -> str:
    return pyotp.TOTP(secret).at(when)


class TestGenerateSecret:
    def test_secret_is_base32_with_enough_entropy(self, engine):
        provisioning = engine.generate_secret("alice@example.com")
        # 32 base32 chars = 160 bits
        assert len(provisioning.secret) >= 16
        base64.b32decode(provisioning.secret)

    def test_provisioning_uri(self, engine):
        provisioning = engine.generate_secret("alice@example.com")
        uri = unquote(provisioning.provisioning_uri)
        assert uri.startswith("otpauth://totp/")
        assert "CashBook" in uri
        assert "alice@example.com" in uri
        assert f"secret={provisioning.secret}" in uri

    def test_qr_code_is_png_data_uri(self, engine):
        qr = engine.generate_secret("alice@example.com").qr_code
        assert qr.startswith("data:image/png;base64,")
        png = base64.b64decode(qr.split(",", 1)[1])
        assert png[:8] == b"\x89PNG\r\n\x1a\n"

    def test_each_call_new_secret(self, engine):
        assert engine.generate_secret("a@x.io").secret != engine.generate_secret("a@x.io").secret


class TestValidateCode:
    def test_current_step(self, engine, secret):
        assert engine.validate_code(secret, _code_at(secret, REFERENCE), for_time=REFERENCE) is True

    def test_previous_step(self, engine, secret):
        code = _code_at(secret, REFERENCE - timedelta(seconds=30))
        assert engine.validate_code(secret, code, for_time=REFERENCE) is True

    def test_next_step(self, engine, secret):
        code = _code_at(secret, REFERENCE + timedelta(seconds=30))
        assert engine.validate_code(secret, code, for_time=REFERENCE) is True

    def test_two_steps_back_rejected(self, engine, secret):
        code = _code_at(secret, REFERENCE - timedelta(seconds=60))
        window = {_code_at(secret, REFERENCE + timedelta(seconds=s)) for s in (-30, 0, 30)}
        if code in window:
            pytest.skip("code collision with the valid window")
        assert engine.validate_code(secret, code, for_time=REFERENCE) is False

    def test_two_steps_ahead_rejected(self, engine, secret):
        code = _code_at(secret, REFERENCE + timedelta(seconds=60))
        window = {_code_at(secret, REFERENCE + timedelta(seconds=s)) for s in (-30, 0, 30)}
        if code in window:
            pytest.skip("code collision with the valid window")
        assert engine.validate_code(secret, code, for_time=REFERENCE) is False

    def test_default_time_is_now(self, engine, secret):
        assert engine.validate_code(secret, pyotp.TOTP(secret).now()) is True

    def test_tolerates_spaces(self, engine, secret):
        code = _code_at(secret, REFERENCE)
        assert engine.validate_code(secret, f"{code[:3]} {code[3:]}", for_time=REFERENCE) is True

    @pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", "12 34"])
    def test_malformed_codes(self, engine, secret, code):
        assert engine.validate_code(secret, code, for_time=REFERENCE) is False

    def test_empty_secret(self, engine):
        assert engine.validate_code("", "123456") is False

    def test_wrong_secret(self, engine, secret):
        other = pyotp.random_base32()
        code = _code_at(other, REFERENCE)
        window = {_code_at(secret, REFERENCE + timedelta(seconds=s)) for s in (-30, 0, 30)}
        if code in window:
            pytest.skip("code collision with the valid window")
        assert engine.validate_code(secret, code, for_time=REFERENCE) is False
