"""
Error taxonomy shared by the vault and the sync engine.

"Not connected" is deliberately absent: a missing credential is a normal
state and is returned as ``None`` rather than raised.
"""

from __future__ import annotations


class FlowmateError(Exception):
    """Base class for all FlowMate errors."""


class InvalidInputError(FlowmateError, ValueError):
    """Empty or malformed data was passed to the token cipher."""


class DecryptionError(FlowmateError):
    """An envelope is malformed or failed authentication (tampered data or wrong key)."""


class KeyConfigError(FlowmateError, ValueError):
    """The configured encryption key is unusable. Raised at startup, never per call."""


class RefreshNotImplementedError(FlowmateError, NotImplementedError):
    """The provider has no token refresh implementation."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Token refresh not implemented for provider: {provider}")


class ProviderPermissionError(FlowmateError):
    """The upstream provider refused access (revoked scopes, missing share, no credential)."""


class TransientSyncError(FlowmateError):
    """A poll failed for a reason that may succeed on retry."""


class ConfigFetchError(FlowmateError):
    """Target configuration (property mapping, automations) could not be loaded."""


class NotionAPIError(FlowmateError):
    """Non-2xx response from the Notion API."""

    def __init__(self, status_code: int, code: str = "", message: str = "") -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"Notion API error {status_code} ({code or 'unknown'}): {message}")

    @property
    def is_permission(self) -> bool:
        return self.status_code in (401, 403) or self.code in (
            "unauthorized",
            "restricted_resource",
        )
