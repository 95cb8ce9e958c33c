"""OmniChat error types.

Only store-facing and provider-facing operations raise these.  Grouping,
search filtering and the selection machine are total and never fail.
"""

from __future__ import annotations

from typing import Any, Optional


class OmniChatError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class StoreUnconfigured(OmniChatError):
    """No MongoDB connection info is available. Not retried."""

    def __init__(self, message: str = "MongoDB is not configured."):
        super().__init__("store_unconfigured", message)


class TransportFailure(OmniChatError):
    """A network or store call failed. The operation is abandoned."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__("transport_failure", message)
        self.cause = cause


class MalformedRecord(OmniChatError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("malformed_record", message, details)


class ProviderError(OmniChatError):
    """The LLM provider is not configured or its call failed."""

    def __init__(self, message: str, configured: bool = True):
        super().__init__("provider_error", message)
        self.configured = configured
