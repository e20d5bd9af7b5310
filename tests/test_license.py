"""Tests for ian.lib.license and ian.lib.settings modules."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ian.lib.license import (
    FEATURE_PDF_EXPORT,
    FEATURE_VERSION_MANAGEMENT,
    NO_LICENSE_MESSAGE,
    LicenseData,
    LicenseError,
    LicenseService,
    check_license,
)
from ian.lib.settings import AISettings, SettingsStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def license_dict(expiry="2099-01-01T00:00:00Z", features=(FEATURE_VERSION_MANAGEMENT,), **extra):
    data = {
        "customerId": "CUST-1",
        "customerName": "Acme",
        "expiryDate": expiry,
        "issuedDate": "2025-01-01T00:00:00Z",
        "allowedFeatures": list(features),
        "licenseType": "commercial",
    }
    data.update(extra)
    return data


class TestCheckLicense:
    async def test_valid(self):
        license = LicenseData.from_dict(license_dict(expiry="2025-06-11T12:00:00Z", maxVersions=5))
        result = await check_license(license, now=NOW)
        assert result.is_valid
        assert result.days_remaining == 10
        assert result.max_versions == 5
        assert result.has_feature(FEATURE_VERSION_MANAGEMENT)
        assert not result.has_feature(FEATURE_PDF_EXPORT)

    async def test_partial_day_rounds_up(self):
        license = LicenseData.from_dict(license_dict(expiry="2025-06-02T00:00:00Z"))
        assert (await check_license(license, now=NOW)).days_remaining == 1

    async def test_expired(self):
        license = LicenseData.from_dict(license_dict(expiry="2025-05-01T00:00:00Z"))
        result = await check_license(license, now=NOW)
        assert not result.is_valid
        assert result.is_expired
        assert result.error_message == "License expired on 2025-05-01T00:00:00Z. Please renew your license."
        assert not result.has_feature(FEATURE_VERSION_MANAGEMENT)

    async def test_signature_checked_first(self):
        license = LicenseData.from_dict(license_dict(expiry="2000-01-01T00:00:00Z"))
        result = await check_license(license, verifier=lambda _: False, now=NOW)
        assert not result.is_valid
        assert not result.is_expired
        assert "signature is invalid" in result.error_message

    async def test_async_verifier(self):
        async def verifier(license):
            return license.customer_id == "CUST-1"

        license = LicenseData.from_dict(license_dict())
        assert (await check_license(license, verifier=verifier, now=NOW)).is_valid

    async def test_bad_expiry(self):
        license = LicenseData.from_dict(license_dict(expiry="next year"))
        result = await check_license(license, now=NOW)
        assert not result.is_valid
        assert "Invalid expiry date" in result.error_message

    def test_schema_enforced(self):
        with pytest.raises(LicenseError, match="Invalid license file"):
            LicenseData.from_dict(license_dict(features=["teleportation"]))


class TestLicenseService:
    async def test_no_license(self, kv_storage):
        service = LicenseService(SettingsStore(kv_storage))
        result = await service.validate()
        assert not result.is_valid
        assert result.error_message == NO_LICENSE_MESSAGE

    async def test_install_and_remove(self, kv_storage):
        service = LicenseService(SettingsStore(kv_storage))
        await service.install(license_dict())
        assert await service.has_feature(FEATURE_VERSION_MANAGEMENT)

        # A fresh service reads the stored license
        assert (await LicenseService(SettingsStore(kv_storage)).validate()).is_valid

        await service.remove()
        assert not (await service.validate()).is_valid

    async def test_install_rejects_expired(self, kv_storage):
        service = LicenseService(SettingsStore(kv_storage))
        with pytest.raises(LicenseError, match="expired"):
            await service.install(license_dict(expiry="2000-01-01T00:00:00Z"))
        assert await service.get_license() is None

    async def test_result_is_memoized(self, kv_storage):
        calls = []

        def verifier(license):
            calls.append(license.customer_id)
            return True

        service = LicenseService(SettingsStore(kv_storage), verifier=verifier)
        await SettingsStore(kv_storage).write("license", license_dict())

        await service.validate()
        await service.validate()
        assert calls == ["CUST-1"]

        await service.revalidate()
        assert calls == ["CUST-1", "CUST-1"]

    async def test_concurrent_callers_share_validation(self, kv_storage):
        calls = []

        async def verifier(license):
            calls.append(1)
            await asyncio.sleep(0.01)
            return True

        await SettingsStore(kv_storage).write("license", license_dict())
        service = LicenseService(SettingsStore(kv_storage), verifier=verifier)
        results = await asyncio.gather(*(service.validate() for _ in range(5)))

        assert len(calls) == 1
        assert all(r.is_valid for r in results)

    async def test_corrupt_stored_license(self, kv_storage, caplog):
        await SettingsStore(kv_storage).write("license", {"customerId": "x"})
        service = LicenseService(SettingsStore(kv_storage))
        assert await service.get_license() is None
        assert "Stored license is invalid" in caplog.text


class TestSettingsStore:
    async def test_ai_settings_default(self, kv_storage):
        settings = SettingsStore(kv_storage, default_model="gpt-4o")
        assert await settings.ai_settings() == AISettings(model="gpt-4o")

    async def test_legacy_auth_mode_key(self, kv_storage):
        await kv_storage.set_setting("ai-settings", {"model": "gemini-pro", "geminiAuthMode": "apiKey"})
        ai = await SettingsStore(kv_storage).ai_settings()
        assert ai.auth_mode == "api_key"

    async def test_broken_settings_fall_back(self, kv_storage, caplog):
        await kv_storage.set_setting("ai-settings", "gpt-4o")
        settings = SettingsStore(kv_storage, default_model="gemini-flash")
        assert (await settings.ai_settings()).model == "gemini-flash"
        assert "Failed to read AI settings" in caplog.text

    async def test_malformed_temperature_is_an_error_result(self, kv_storage, caplog):
        await kv_storage.set_setting("ai-settings", {"model": "gpt-4o", "temperature": "warm"})
        settings = SettingsStore(kv_storage, default_model="gemini-flash")

        result = await settings.read_ai_settings()
        assert not result.ok
        assert isinstance(result.error, ValueError)
        assert await settings.ai_settings() == AISettings(model="gemini-flash")
        assert "Failed to read AI settings" in caplog.text

    async def test_unknown_auth_mode_rejected(self, kv_storage):
        with pytest.raises(ValueError, match="Unknown auth mode"):
            await SettingsStore(kv_storage).save_ai_settings(AISettings(auth_mode="oauth"))

    async def test_read_error_is_a_result(self):
        class Failing:
            async def get_setting(self, key):
                raise OSError("disk gone")

        result = await SettingsStore(Failing()).read("anything")
        assert not result.ok
        assert result.unwrap_or("fallback") == "fallback"
