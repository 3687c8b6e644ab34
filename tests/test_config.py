"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from app.config import Settings


def test_default_lock_timeout_outlives_locked_store_calls() -> None:
    config = Settings()

    assert config.lock_timeout_seconds > 3 * config.store_timeout_seconds


def test_lock_timeout_shorter_than_locked_store_calls_is_rejected() -> None:
    with pytest.raises(ValidationError, match="LOCK_TIMEOUT_SECONDS"):
        Settings(STORE_TIMEOUT_SECONDS=5.0, LOCK_TIMEOUT_SECONDS=10.0)

    with pytest.raises(ValidationError):
        Settings(STORE_TIMEOUT_SECONDS=5.0, LOCK_TIMEOUT_SECONDS=15.0)


def test_lock_timeout_scaled_with_store_timeout_is_accepted() -> None:
    config = Settings(STORE_TIMEOUT_SECONDS=2.0, LOCK_TIMEOUT_SECONDS=7.0)

    assert config.lock_timeout_seconds == 7.0
