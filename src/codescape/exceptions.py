"""Custom exceptions for codescape."""


class CodescapeError(Exception):
    """Base exception for all codescape errors."""


class ConfigError(CodescapeError):
    """Configuration-related errors."""


class GraphError(CodescapeError):
    """Graph state errors."""


class MalformedFragmentError(GraphError):
    """A fragment entry is missing required fields or has invalid values."""


class LayoutError(CodescapeError):
    """Layout computation errors."""


class ProviderError(CodescapeError):
    """Errors talking to the external analysis provider."""


class ProviderUnavailableError(ProviderError):
    """Raised when no analysis provider is connected."""

    def __init__(self, reason: str = "no active editor session"):
        super().__init__(f"Analysis provider unavailable: {reason}")


class RequestTimeoutError(ProviderError):
    """Raised when a pending request is not answered in time."""

    def __init__(self, request_id: str, timeout_ms: float):
        self.request_id = request_id
        self.timeout_ms = timeout_ms
        super().__init__(f"Request {request_id} timed out after {timeout_ms:g}ms")


class ScanError(CodescapeError):
    """Project directory scanning errors."""
