"""Unit tests for API key status derivation."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from key_manager.models.api_key import ApiKey, KeyStatus, classify_key_status

NOW = datetime(2026, 1, 15, 12, 0, 0)


class TestClassifyKeyStatus:
    """Precedence: deleted > inactive > expired > active."""

    @pytest.mark.parametrize("is_active", [True, False])
    @pytest.mark.parametrize(
        "expiry_date",
        [None, NOW - timedelta(days=1), NOW, NOW + timedelta(days=1)],
    )
    def test_deleted_overrides_everything(self, is_active, expiry_date):
        status = classify_key_status(
            deleted_at=NOW - timedelta(hours=1),
            is_active=is_active,
            expiry_date=expiry_date,
            now=NOW,
        )
        assert status == KeyStatus.DELETED

    def test_inactive_overrides_expired(self):
        status = classify_key_status(
            deleted_at=None,
            is_active=False,
            expiry_date=NOW - timedelta(days=1),
            now=NOW,
        )
        assert status == KeyStatus.INACTIVE

    def test_expiry_equal_to_now_is_expired(self):
        status = classify_key_status(
            deleted_at=None,
            is_active=True,
            expiry_date=NOW,
            now=NOW,
        )
        assert status == KeyStatus.EXPIRED

    def test_expiry_just_after_now_is_active(self):
        status = classify_key_status(
            deleted_at=None,
            is_active=True,
            expiry_date=NOW + timedelta(microseconds=1),
            now=NOW,
        )
        assert status == KeyStatus.ACTIVE

    def test_no_expiry_is_active(self):
        status = classify_key_status(
            deleted_at=None,
            is_active=True,
            expiry_date=None,
            now=NOW,
        )
        assert status == KeyStatus.ACTIVE

    def test_status_values_are_wire_strings(self):
        assert [s.value for s in KeyStatus] == ["active", "inactive", "expired", "deleted"]


class TestApiKeyComputeStatus:
    """ApiKey.compute_status delegates to the shared classifier."""

    def test_uses_model_fields(self):
        key = ApiKey(
            client_id="sa-1",
            api_key="k",
            name="n",
            is_active=True,
            expiry_date=NOW,
        )
        assert key.compute_status(now=NOW) == KeyStatus.EXPIRED
        assert key.compute_status(now=NOW - timedelta(seconds=1)) == KeyStatus.ACTIVE

    def test_soft_deleted_key(self):
        key = ApiKey(
            client_id="sa-1",
            api_key="k",
            name="n",
            is_active=False,
            deleted_at=NOW,
        )
        assert key.is_deleted
        assert key.compute_status(now=NOW) == KeyStatus.DELETED
