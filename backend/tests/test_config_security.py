from __future__ import annotations

import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings  # noqa: E402
from utils.datetime_utils import add_hours_to_clock, normalize_day_name  # noqa: E402
from utils.encryption import decrypt_credential, encrypt_credential, mask_credential  # noqa: E402


def test_production_security_gate_rejects_default_secret_values():
    settings = Settings(
        ENVIRONMENT="production",
        ENCRYPTION_KEY="change-me-in-production-32bytes!",
    )
    with pytest.raises(RuntimeError):
        settings.validate_security_configuration()


def test_production_security_gate_accepts_hardened_values():
    settings = Settings(
        ENVIRONMENT="production",
        ENCRYPTION_KEY="a-much-longer-and-rotated-secret",
        CORS_ORIGINS=["https://targets.example.com"],
    )
    settings.validate_security_configuration()


def test_development_skips_security_gate():
    Settings(ENVIRONMENT="development").validate_security_configuration()


def test_credential_encryption_round_trip_and_mask():
    token = encrypt_credential("  sk-secret-value  ")
    assert token != "sk-secret-value"
    assert decrypt_credential(token) == "sk-secret-value"
    assert decrypt_credential(None) is None
    assert mask_credential("short") == "*****"
    with pytest.raises(ValueError):
        encrypt_credential("   ")


def test_clock_and_day_helpers():
    assert add_hours_to_clock("22:00", 8) == "06:00"
    assert add_hours_to_clock("22:00", 9) == "07:00"
    assert add_hours_to_clock("23:30", 7.5) == "07:00"
    assert normalize_day_name(" wed ") == "Wednesday"
    assert normalize_day_name("x") is None
