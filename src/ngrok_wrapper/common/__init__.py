"""Common utilities and shared functionality."""

from .exceptions import (
    AuthenticationError,
    BinaryNotFoundError,
    ConfigurationError,
    LaunchError,
    NgrokWrapperError,
    NoTunnelsError,
    ProcessError,
    ReadinessFatal,
    TunnelApiError,
    TunnelError,
)
from .logging import get_logger, setup_logging
from .utils import (
    mask_sensitive_data,
    sanitize_log_data,
    validate_local_address,
    validate_non_empty_string,
)

__all__ = [
    # Exceptions
    "NgrokWrapperError",
    "ConfigurationError",
    "ProcessError",
    "LaunchError",
    "BinaryNotFoundError",
    "AuthenticationError",
    "ReadinessFatal",
    "TunnelError",
    "TunnelApiError",
    "NoTunnelsError",
    # Logging
    "get_logger",
    "setup_logging",
    # Utils
    "validate_non_empty_string",
    "validate_local_address",
    "mask_sensitive_data",
    "sanitize_log_data",
]
