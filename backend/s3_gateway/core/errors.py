class GatewayError(Exception):
    """Base class for gateway errors."""


class ConfigurationError(GatewayError):
    """Raised when required settings are missing or invalid."""


class StorageError(GatewayError):
    """Raised when the object storage backend rejects or fails a call."""


class StreamingError(GatewayError):
    """Raised when a download fails after the response has started."""
