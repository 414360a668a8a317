"""Configuration models for the ngrok agent and the control API client."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common.exceptions import ConfigurationError
from .common.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REGION = "us"


class AgentOptions(BaseModel):
    """Options used to launch the ngrok agent binary.

    Only ``binary_path`` is needed to start the agent. When ``auth_token`` is
    set, the client provisions it with ``ngrok authtoken`` before starting.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    binary_path: str = Field(default="", description="Agent binary that will be run")
    region: str = Field(
        default=DEFAULT_REGION, description="Region the tunnels are served from"
    )
    subdomain: str | None = Field(
        default=None, description="Reserved subdomain (paid plans only)"
    )
    config_path: str | None = Field(
        default=None, description="Agent config file holding the auth token"
    )
    auth_token: str | None = Field(
        default=None, description="Token used to authenticate the agent"
    )
    log_binary: bool = Field(default=False, description="Log raw agent output")
    log_api: bool = Field(
        default=False, description="Log every failed control API attempt"
    )
    ignore_signals: bool = Field(
        default=False,
        description="Run the agent in its own session so terminal signals skip it",
    )
    forward_signals: bool = Field(
        default=False,
        description="Forward termination signals received by this process to the agent",
    )

    @field_validator("region")
    @classmethod
    def default_region(cls, v: str) -> str:
        """An empty region falls back to the default one."""
        return v or DEFAULT_REGION

    @field_validator("subdomain", "config_path", "auth_token")
    @classmethod
    def empty_to_none(cls, v: str | None) -> str | None:
        return v or None

    def require_binary(self) -> str:
        """Return the binary path or raise if none is configured.

        Raises:
            ConfigurationError: If ``binary_path`` is empty
        """
        if not self.binary_path:
            raise ConfigurationError("binary path required")
        return self.binary_path

    def start_arguments(self) -> list[str]:
        """Build the argument vector for ``ngrok start``."""
        arguments = ["start", "--none", "--log=stdout", f"--region={self.region}"]

        if self.config_path:
            arguments.append(f"--config={self.config_path}")

        if self.subdomain:
            arguments.append(f"-subdomain={self.subdomain}")

        logger.debug("Built agent start arguments", arguments=arguments)
        return arguments

    def authtoken_arguments(self) -> list[str]:
        """Build the argument vector for ``ngrok authtoken``.

        Raises:
            ConfigurationError: If no auth token is configured
        """
        if not self.auth_token:
            raise ConfigurationError("token missing")

        arguments = ["authtoken", self.auth_token]
        if self.config_path:
            arguments.append(f"--config={self.config_path}")
        return arguments


class RetryPolicy(BaseModel):
    """Bounded retry for control API calls.

    The agent's API is often unavailable for a moment after its port shows up
    in the output, so every call is retried with a fixed delay.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: int = Field(
        default=100, ge=0, description="Retries after the first attempt"
    )
    delay: float = Field(
        default=1.0, ge=0.0, description="Fixed delay between attempts in seconds"
    )
    request_timeout: float = Field(
        default=10.0, gt=0.0, description="Timeout for a single HTTP request"
    )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1
