"""
License checks.

LicenseService validates the installed license (expiry, features, and an
optional injected signature check) and memoizes the result until the
license changes or invalidate()/revalidate() is called. Concurrent
callers share one in-flight validation.

Signature cryptography is not implemented here; pass a verifier.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

from . import validate
from .constants import LICENSE_KEY
from .settings import SettingsStore

logger = logging.getLogger(__name__)

FEATURE_AI_API_ACCESS = "ai_api_access"
FEATURE_PIPELINE_EXECUTION = "pipeline_execution"
FEATURE_PDF_EXPORT = "pdf_export"
FEATURE_VERSION_MANAGEMENT = "version_management"
FEATURE_FILE_UPLOAD = "file_upload"

NO_LICENSE_MESSAGE = "No license file found. Please install a valid license to use this application."

SignatureVerifier = Callable[["LicenseData"], Union[bool, Awaitable[bool]]]


class LicenseError(Exception):
    """A license file was rejected."""
    pass


@dataclass
class LicenseData:
    customer_id: str
    customer_name: str
    expiry_date: str  # ISO-8601
    issued_date: str  # ISO-8601
    allowed_features: list[str]
    license_type: str  # trial, commercial, enterprise
    max_versions: Optional[int] = None  # Versions allowed per job
    signature: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "expiryDate": self.expiry_date,
            "issuedDate": self.issued_date,
            "allowedFeatures": list(self.allowed_features),
            "licenseType": self.license_type,
        }
        if self.max_versions is not None:
            data["maxVersions"] = self.max_versions
        if self.signature is not None:
            data["signature"] = self.signature
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LicenseData":
        """
        Raises:
            LicenseError: if the data doesn't match the license schema
        """
        try:
            validate.validate(data, "license")
        except validate.ValidationError as e:
            raise LicenseError(f"Invalid license file: {e}") from None
        return cls(
            customer_id=data["customerId"],
            customer_name=data["customerName"],
            expiry_date=data["expiryDate"],
            issued_date=data["issuedDate"],
            allowed_features=list(data["allowedFeatures"]),
            license_type=data["licenseType"],
            max_versions=data.get("maxVersions"),
            signature=data.get("signature"),
        )


@dataclass
class LicenseValidationResult:
    is_valid: bool
    is_expired: bool = False
    days_remaining: Optional[int] = None
    features: list[str] = field(default_factory=list)
    error_message: Optional[str] = None
    customer_id: Optional[str] = None
    license_type: Optional[str] = None
    max_versions: Optional[int] = None

    def has_feature(self, feature: str) -> bool:
        return self.is_valid and feature in self.features


def _parse_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def check_license(license: LicenseData, verifier: Optional[SignatureVerifier] = None,
                        now: Optional[datetime] = None) -> LicenseValidationResult:
    """Validate one license: signature (if a verifier is given), then expiry."""
    if verifier is not None:
        verified = verifier(license)
        if asyncio.iscoroutine(verified) or isinstance(verified, asyncio.Future):
            verified = await verified
        if not verified:
            return LicenseValidationResult(
                is_valid=False,
                error_message="License signature is invalid. The license file may have been tampered with.",
            )

    try:
        expiry = _parse_date(license.expiry_date)
    except ValueError:
        return LicenseValidationResult(is_valid=False, error_message=f"Invalid expiry date: {license.expiry_date}")

    now = now or datetime.now(timezone.utc)
    days_remaining = math.ceil((expiry - now).total_seconds() / 86400)
    common = dict(
        days_remaining=days_remaining,
        customer_id=license.customer_id,
        license_type=license.license_type,
        max_versions=license.max_versions,
    )

    if expiry < now:
        return LicenseValidationResult(
            is_valid=False,
            is_expired=True,
            error_message=f"License expired on {license.expiry_date}. Please renew your license.",
            **common,
        )

    return LicenseValidationResult(is_valid=True, features=list(license.allowed_features), **common)


class LicenseService:
    """Installed-license state with a memoized validation result."""

    def __init__(self, settings: SettingsStore, verifier: Optional[SignatureVerifier] = None):
        self.settings = settings
        self.verifier = verifier
        self._cached: Optional[LicenseValidationResult] = None
        self._inflight: Optional[asyncio.Task] = None

    async def get_license(self) -> Optional[LicenseData]:
        result = await self.settings.read(LICENSE_KEY)
        if not result.ok:
            logger.warning(f"Failed to load license: {result.error}")
        data = result.unwrap_or(None)
        if data is None:
            return None
        try:
            return LicenseData.from_dict(data)
        except LicenseError as e:
            logger.warning(f"Stored license is invalid: {e}")
            return None

    async def _perform_validation(self) -> LicenseValidationResult:
        license = await self.get_license()
        if license is None:
            return LicenseValidationResult(is_valid=False, error_message=NO_LICENSE_MESSAGE)
        return await check_license(license, self.verifier)

    async def validate(self) -> LicenseValidationResult:
        """Cached result if available; otherwise validate (once, for all concurrent callers)."""
        if self._cached is not None:
            return self._cached
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._perform_validation())
        task = self._inflight
        try:
            result = await task
        finally:
            if self._inflight is task:
                self._inflight = None
        self._cached = result
        return result

    def invalidate(self) -> None:
        self._cached = None
        self._inflight = None

    async def revalidate(self) -> LicenseValidationResult:
        self.invalidate()
        return await self.validate()

    async def install(self, data: dict) -> LicenseValidationResult:
        """Validate and store a license.

        Raises:
            LicenseError: if the license is malformed, expired or not genuine
        """
        license = LicenseData.from_dict(data)
        result = await check_license(license, self.verifier)
        if not result.is_valid:
            raise LicenseError(result.error_message or "Invalid license file")
        await self.settings.write(LICENSE_KEY, license.to_dict())
        self._cached = result
        self._inflight = None
        logger.info(f"Installed {license.license_type} license for {license.customer_name}")
        return result

    async def remove(self) -> None:
        await self.settings.write(LICENSE_KEY, None)
        self.invalidate()

    async def has_feature(self, feature: str) -> bool:
        return (await self.validate()).has_feature(feature)
