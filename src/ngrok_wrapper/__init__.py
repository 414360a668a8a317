"""ngrok wrapper - drive the ngrok agent and manage tunnels through its API."""

from .client import NgrokClient
from .common.exceptions import (
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
from .common.logging import get_logger, setup_logging
from .config import AgentOptions, RetryPolicy
from .process import ProcessManager
from .readiness import Fatal, Ready, ReadinessScanner
from .tunnels import Protocol, Tunnel, TunnelLifecycleClient, TunnelRegistry

__version__ = "0.1.0"


__all__ = [
    # Session
    "NgrokClient",
    "AgentOptions",
    "RetryPolicy",
    # Components
    "ProcessManager",
    "ReadinessScanner",
    "Ready",
    "Fatal",
    "TunnelLifecycleClient",
    "TunnelRegistry",
    "Tunnel",
    "Protocol",
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
]
