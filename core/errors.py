"""
Error taxonomy for the dispatch layer.

Components raise these internally. The Dispatcher converts every one of them
into a BackendResponse carrying an error string, so callers of ``dispatch``
never see them raised.
"""

from typing import Optional


class DispatchError(Exception):
    """Base exception for all dispatch-layer errors"""

    error_type = "dispatch"

    def __init__(self, message: str, variant_id: Optional[str] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.variant_id = variant_id
        self.error_code = error_code


class ConfigurationError(DispatchError):
    """Invalid experiment distribution, unknown variant, bad timeout, missing backend"""

    error_type = "configuration"


class NotFoundError(ConfigurationError):
    """Catalog or experiment lookup miss"""

    error_type = "not_found"


class TransportError(DispatchError):
    """Network, timeout or provider-side failure during execute"""

    error_type = "transport"


class RateLimitError(TransportError):
    """Raised when the provider throttles the request"""
    pass


class AuthenticationError(TransportError):
    """Raised when provider credentials are missing or rejected"""
    pass


class ModelNotFoundError(TransportError):
    """Raised when the provider does not serve the requested model"""
    pass


class BackendTimeoutError(TransportError):
    """Raised when a backend call exceeds its time budget"""

    error_type = "timeout"
