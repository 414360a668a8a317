"""Session object tying the agent process, readiness and tunnels together."""

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from types import TracebackType
from typing import Any, Literal

import httpx

from .common.exceptions import (
    AuthenticationError,
    ConfigurationError,
    LaunchError,
    ProcessError,
)
from .common.logging import get_logger
from .common.utils import mask_sensitive_data
from .config import AgentOptions, RetryPolicy
from .process import ProcessManager
from .readiness import Fatal, ReadinessScanner
from .tunnels import Tunnel, TunnelLifecycleClient, TunnelRegistry

logger = get_logger(__name__)


class NgrokClient:
    """One ngrok session: the agent process, its control address and tunnels.

    Typical use::

        with NgrokClient(AgentOptions(binary_path="/usr/local/bin/ngrok")) as client:
            client.start_server()
            client.wait_until_ready()
            client.add_tunnel(Tunnel(proto=Protocol.HTTP, name="web", local_address="8080"))
            client.connect_all()

    The control address is written once, when the agent reports readiness
    (or at construction for :meth:`attach`), and only read afterwards.
    """

    def __init__(
        self,
        options: AgentOptions | None = None,
        *,
        control_address: str | None = None,
        retry: RetryPolicy | None = None,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize a session.

        Args:
            options: Agent options; required unless ``control_address`` is given
            control_address: host:port of an agent that is already running
            retry: Retry policy for control API calls
            http_client: httpx client for the control API
            sleep: Delay function between API attempts

        Raises:
            ConfigurationError: If neither a binary path nor an address is given
            BinaryNotFoundError: If the binary is missing or not executable
            AuthenticationError: If auth token provisioning fails
        """
        if options is None and control_address is None:
            raise ConfigurationError("binary path required")

        self.options = options or AgentOptions()
        self.retry = retry or RetryPolicy()
        self.registry = TunnelRegistry()
        self._http_client = http_client
        self._sleep = sleep
        self._address_lock = threading.Lock()
        self._control_address: str | None = None
        self._lifecycle: TunnelLifecycleClient | None = None
        self._ready: Future[str] | None = None
        self._process: ProcessManager | None = None

        if control_address is not None:
            self._set_control_address(control_address)
        else:
            self._process = ProcessManager(
                self.options.require_binary(),
                ignore_signals=self.options.ignore_signals,
            )
            if self.options.auth_token:
                self.provision_auth_token()

        logger.info(
            "New client",
            binary_path=self.options.binary_path or None,
            region=self.options.region,
            control_address=control_address,
        )

    @classmethod
    def attach(cls, control_address: str, **kwargs: Any) -> "NgrokClient":
        """Session bound to an agent that was started separately."""
        return cls(control_address=control_address, **kwargs)

    @property
    def control_address(self) -> str | None:
        return self._control_address

    @property
    def process(self) -> ProcessManager:
        if self._process is None:
            raise ProcessError("Client is attached to an external agent process")
        return self._process

    @property
    def tunnels(self) -> list[Tunnel]:
        return self.registry.list_tunnels()

    def provision_auth_token(self) -> None:
        """Store the configured auth token with ``ngrok authtoken``.

        Raises:
            ConfigurationError: If no token is configured
            LaunchError: If the binary cannot be run
            AuthenticationError: If the agent rejects the token
        """
        arguments = self.options.authtoken_arguments()
        logger.info(
            "Provisioning auth token",
            token=mask_sensitive_data(self.options.auth_token),
        )
        try:
            output = self.process.run_once(arguments)
        except LaunchError:
            raise
        except ProcessError as e:
            raise AuthenticationError(f"Auth token provisioning failed: {e}") from e
        logger.debug("Auth token provisioned", output=output.strip())

    def start_server(self) -> "Future[str]":
        """Launch the agent and start watching its output.

        Returns:
            Future resolving to the control address, or raising
            ``ReadinessFatal`` if the agent fails before becoming ready

        Raises:
            LaunchError: If the agent cannot be started
            ProcessError: If this session already has a control address; a
                closed session cannot be restarted, create a new client
        """
        if self._control_address is not None:
            raise ProcessError(
                f"Session already bound to {self._control_address}, use a new client"
            )
        logger.info("Start server")
        process = self.process
        process.start(self.options.start_arguments())

        if self.options.forward_signals:
            process.install_signal_forwarding()

        scanner = ReadinessScanner(
            log_output=self.options.log_binary, on_fatal=self._on_fatal
        )
        self._ready = scanner.start(process.stdout)
        self._ready.add_done_callback(self._on_ready)
        return self._ready

    def wait_until_ready(self, timeout: float | None = None) -> str:
        """Block until the control API address is known.

        Raises:
            ReadinessFatal: If the agent reported a fatal condition or exited
            ProcessError: If the server was not started or timeout elapsed
        """
        if self._control_address is not None:
            return self._control_address
        if self._ready is None:
            raise ProcessError("Server not started")
        try:
            address = self._ready.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise ProcessError(f"Agent not ready within {timeout}s") from e
        self._set_control_address(address)
        return address

    def _on_ready(self, future: "Future[str]") -> None:
        if future.exception() is None:
            self._set_control_address(future.result())

    def _on_fatal(self, fatal: Fatal) -> None:
        logger.error("Stopping agent", reason=fatal.reason, message=fatal.message)
        if self._process is not None and self._process.is_running():
            try:
                self._process.terminate()
            except ProcessError as e:
                logger.error("Failed to stop agent", error=str(e))

    def _set_control_address(self, address: str) -> None:
        with self._address_lock:
            if self._control_address not in (None, address):
                raise ProcessError("Control address is already set")
            self._control_address = address

    def _lifecycle_client(self) -> TunnelLifecycleClient:
        if self._control_address is None:
            raise ProcessError("Control API address unknown, wait for readiness first")
        if self._lifecycle is None:
            self._lifecycle = TunnelLifecycleClient(
                self._control_address,
                retry=self.retry,
                log_api=self.options.log_api,
                http_client=self._http_client,
                sleep=self._sleep,
            )
        return self._lifecycle

    def add_tunnel(self, tunnel: Tunnel) -> None:
        """Register ``tunnel`` without connecting it."""
        self.registry.add(tunnel)

    def create_tunnel(self, tunnel: Tunnel) -> None:
        """Create a single tunnel; it does not need to be registered."""
        self._lifecycle_client().create(tunnel)

    def close_tunnel(self, tunnel: Tunnel) -> None:
        """Close a single tunnel."""
        self._lifecycle_client().destroy(tunnel)

    def connect_all(self) -> dict[str, Exception | None]:
        """Create all registered tunnels that are not created yet."""
        return self.registry.connect_all(self._lifecycle_client())

    def disconnect_all(self) -> dict[str, Exception | None]:
        """Close all registered tunnels that are created."""
        return self.registry.disconnect_all(self._lifecycle_client())

    def list_remote_tunnels(self) -> list[dict[str, Any]]:
        """Tunnels the agent reports through its control API."""
        return self._lifecycle_client().list_tunnels()

    def signal(self, sig: int) -> None:
        """Forward ``sig`` to the agent process."""
        self.process.signal(sig)

    def close(self) -> None:
        """Kill the agent process and release the HTTP client."""
        if self._process is not None and self._process.is_running():
            self._process.terminate()
            self._process.wait(timeout=5.0)
        if self._lifecycle is not None:
            self._lifecycle.close()
            self._lifecycle = None

    def __enter__(self) -> "NgrokClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        try:
            self.close()
        except ProcessError as e:
            logger.error("Error during context exit", error=str(e))
        return False
