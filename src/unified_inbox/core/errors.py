"""Error types raised by the inbox core and its adapters."""

from typing import Optional


class InboxError(Exception):
    """Base class for inbox errors."""


class ConfigurationError(InboxError):
    """Missing or invalid instance configuration."""


class ProviderApiError(InboxError):
    """Upstream provider returned a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class MalformedPayloadError(InboxError):
    """Provider payload does not have the expected shape."""


class TransformError(InboxError, ValueError):
    """Transformer called with the wrong kind of provider entity."""
