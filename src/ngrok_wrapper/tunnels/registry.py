"""Tunnel registry with concurrent bulk connect and disconnect."""

import threading
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor

from ..common.exceptions import NoTunnelsError, TunnelError
from ..common.logging import get_logger
from .lifecycle import TunnelLifecycleClient
from .models import Tunnel

logger = get_logger(__name__)


class TunnelRegistry:
    """Ordered, in-memory list of the tunnels of one session.

    Names are not checked for uniqueness here. A duplicate name surfaces as a
    control API error when the tunnel is created.
    """

    def __init__(self) -> None:
        self._tunnels: list[Tunnel] = []
        self._lock = threading.Lock()

    def add(self, tunnel: Tunnel) -> None:
        """Append ``tunnel`` without connecting it."""
        with self._lock:
            self._tunnels.append(tunnel)
        logger.info("Added tunnel", tunnel=tunnel.name, proto=tunnel.proto.value)

    def get(self, name: str) -> Tunnel | None:
        """First tunnel registered under ``name``, if any."""
        with self._lock:
            return next((t for t in self._tunnels if t.name == name), None)

    def list_tunnels(self, created: bool | None = None) -> list[Tunnel]:
        """Snapshot of registered tunnels, optionally filtered by created state."""
        with self._lock:
            tunnels = list(self._tunnels)
        if created is not None:
            tunnels = [t for t in tunnels if t.is_created == created]
        return tunnels

    def connect_all(
        self, lifecycle: TunnelLifecycleClient
    ) -> dict[str, Exception | None]:
        """Create every tunnel that is not created yet, concurrently.

        Individual failures never propagate: each one is retried and logged
        by the lifecycle client. The returned mapping tells which tunnels
        failed; callers may equally inspect ``is_created`` on each tunnel.

        Returns:
            Mapping of tunnel name to None on success or the final error

        Raises:
            NoTunnelsError: If no tunnel is registered
        """
        logger.info("Connecting tunnels")
        pending = self._require_tunnels("connect", created=False)
        return self._run_all(lifecycle.create, pending)

    def disconnect_all(
        self, lifecycle: TunnelLifecycleClient
    ) -> dict[str, Exception | None]:
        """Close every created tunnel, concurrently.

        Returns:
            Mapping of tunnel name to None on success or the final error

        Raises:
            NoTunnelsError: If no tunnel is registered
        """
        logger.info("Disconnecting tunnels")
        active = self._require_tunnels("disconnect", created=True)
        return self._run_all(lifecycle.destroy, active)

    def _require_tunnels(self, action: str, created: bool) -> list[Tunnel]:
        tunnels = self.list_tunnels()
        if not tunnels:
            raise NoTunnelsError(f"need at least 1 tunnel to {action}")
        return [t for t in tunnels if t.is_created == created]

    @staticmethod
    def _run_all(
        operation: Callable[[Tunnel], None], tunnels: list[Tunnel]
    ) -> dict[str, Exception | None]:
        outcomes: dict[str, Exception | None] = {}
        if not tunnels:
            return outcomes

        with ThreadPoolExecutor(
            max_workers=len(tunnels), thread_name_prefix="ngrok-tunnel"
        ) as executor:
            futures = [(t, executor.submit(operation, t)) for t in tunnels]

        for tunnel, future in futures:
            error = future.exception()
            if error is not None and not isinstance(error, TunnelError):
                logger.error(
                    "Unexpected error in tunnel operation",
                    tunnel=tunnel.name,
                    error=str(error),
                )
            outcomes[tunnel.name] = error  # type: ignore[assignment]
        return outcomes

    def __len__(self) -> int:
        with self._lock:
            return len(self._tunnels)

    def __iter__(self) -> Iterator[Tunnel]:
        return iter(self.list_tunnels())
