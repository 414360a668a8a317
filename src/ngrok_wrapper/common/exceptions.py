"""Exception hierarchy for the ngrok wrapper."""


class NgrokWrapperError(Exception):
    """Base exception for all ngrok wrapper errors."""

    pass


class ConfigurationError(NgrokWrapperError):
    """Raised when required configuration is missing or invalid."""

    pass


class ProcessError(NgrokWrapperError):
    """Raised when the agent process cannot be signalled, killed or run."""

    pass


class LaunchError(ProcessError):
    """Raised when the agent binary cannot be started."""

    pass


class BinaryNotFoundError(LaunchError):
    """Raised when the agent binary is missing or not executable."""

    pass


class AuthenticationError(NgrokWrapperError):
    """Raised when auth token provisioning fails."""

    pass


class ReadinessFatal(NgrokWrapperError):
    """Raised when the agent reports a condition that ends the session.

    Attributes:
        reason: One of ``address_in_use``, ``session_limit`` or ``stream_closed``
    """

    ADDRESS_IN_USE = "address_in_use"
    SESSION_LIMIT = "session_limit"
    STREAM_CLOSED = "stream_closed"

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class TunnelError(NgrokWrapperError):
    """Base exception for tunnel operations."""

    pass


class TunnelApiError(TunnelError):
    """Raised when the agent control API rejects or fails a request.

    Attributes:
        status_code: HTTP status of the last response, None for transport errors
        body: Response body text of the last response
        attempts: Number of attempts made before giving up
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
        attempts: int = 1,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.attempts = attempts


class NoTunnelsError(TunnelError):
    """Raised when a bulk operation runs against an empty registry."""

    pass
