"""Create and close tunnels through the agent's local control API."""

import time
from collections.abc import Callable
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx

from ..common.exceptions import TunnelApiError
from ..common.logging import get_logger
from ..common.utils import sanitize_log_data
from ..config import RetryPolicy
from .models import Tunnel

logger = get_logger(__name__)

TUNNELS_PATH = "/api/tunnels"


class TunnelLifecycleClient:
    """HTTP client for the agent control API with bounded retry.

    Every create and destroy call is attempted up to
    ``retry.max_retries + 1`` times. Transport errors, non-2xx responses and
    unreadable 2xx bodies all count as failed attempts. Only the last failure
    is raised.
    """

    def __init__(
        self,
        control_address: str,
        retry: RetryPolicy | None = None,
        log_api: bool = False,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the client.

        Args:
            control_address: host:port the agent's control API listens on
            retry: Retry policy, defaults to 100 retries one second apart
            log_api: Log every failed attempt at warning level
            http_client: Preconfigured httpx client (tests pass a mock transport)
            sleep: Function used for the delay between attempts
        """
        self.control_address = control_address
        self.retry = retry or RetryPolicy()
        self.log_api = log_api
        self._sleep = sleep
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=self.retry.request_timeout)

    @property
    def base_url(self) -> str:
        return f"http://{self.control_address}"

    def create(self, tunnel: Tunnel) -> None:
        """Create ``tunnel`` and record its public URL on success.

        The agent needs a moment after it starts listening, so every attempt
        is preceded by the policy delay.

        Raises:
            TunnelApiError: If every attempt failed
        """
        url = f"{self.base_url}{TUNNELS_PATH}"
        body = tunnel.request_body()

        def attempt() -> None:
            response = self._http.post(url, json=body)
            self._check_response(response)
            try:
                record = response.json()
            except ValueError as e:
                raise TunnelApiError(
                    f"Invalid JSON from control API: {e}",
                    status_code=response.status_code,
                    body=response.text,
                ) from e

            public_url = record.get("public_url") if isinstance(record, dict) else None
            if not public_url or not isinstance(public_url, str):
                raise TunnelApiError(
                    "Control API response has no public_url",
                    status_code=response.status_code,
                    body=response.text,
                )
            tunnel.mark_created(public_url)

        logger.debug(
            "Creating tunnel", tunnel=tunnel.name, body=sanitize_log_data(body)
        )
        self._with_retry("create", tunnel, attempt, delay_first=True)
        logger.info(
            "Tunnel created", tunnel=tunnel.name, remote_address=tunnel.remote_address
        )

    def destroy(self, tunnel: Tunnel) -> None:
        """Close ``tunnel`` and clear its public URL on success.

        Raises:
            TunnelApiError: If every attempt failed
        """
        url = f"{self.base_url}{TUNNELS_PATH}/{quote(tunnel.name, safe='')}"

        def attempt() -> None:
            response = self._http.delete(url)
            self._check_response(response)
            tunnel.mark_closed()

        logger.debug(
            "Closing tunnel", tunnel=tunnel.name, remote_address=tunnel.remote_address
        )
        self._with_retry("destroy", tunnel, attempt, delay_first=False)
        logger.info("Tunnel closed", tunnel=tunnel.name)

    def list_tunnels(self) -> list[dict[str, Any]]:
        """Return the tunnels the agent currently serves (single attempt).

        Raises:
            TunnelApiError: If the request fails
        """
        try:
            response = self._http.get(f"{self.base_url}{TUNNELS_PATH}")
        except httpx.HTTPError as e:
            raise TunnelApiError(f"Control API request failed: {e}") from e
        self._check_response(response)
        try:
            return list(response.json().get("tunnels", []))
        except (ValueError, AttributeError) as e:
            raise TunnelApiError(
                f"Invalid tunnel list from control API: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    def _with_retry(
        self,
        operation: str,
        tunnel: Tunnel,
        attempt: Callable[[], None],
        delay_first: bool,
    ) -> None:
        last_error: TunnelApiError | None = None

        for attempt_number in range(1, self.retry.max_attempts + 1):
            if delay_first or attempt_number > 1:
                self._sleep(self.retry.delay)
            try:
                attempt()
                return
            except httpx.HTTPError as e:
                last_error = TunnelApiError(f"Control API request failed: {e}")
                last_error.__cause__ = e
            except TunnelApiError as e:
                last_error = e

            self._log_attempt_failure(operation, tunnel, attempt_number, last_error)

        if last_error is None:
            raise TunnelApiError(f"No {operation} attempt was made", attempts=0)
        last_error.attempts = self.retry.max_attempts
        logger.error(
            f"Failed to {operation} tunnel",
            tunnel=tunnel.name,
            attempts=self.retry.max_attempts,
            error=str(last_error),
        )
        raise last_error

    def _log_attempt_failure(
        self, operation: str, tunnel: Tunnel, attempt: int, error: TunnelApiError
    ) -> None:
        log = logger.warning if self.log_api else logger.debug
        log(
            f"Tunnel {operation} attempt failed",
            tunnel=tunnel.name,
            attempt=attempt,
            status_code=error.status_code,
            error=str(error),
        )

    @staticmethod
    def _check_response(response: httpx.Response) -> None:
        if not response.is_success:
            raise TunnelApiError(
                f"error api: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> "TunnelLifecycleClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
