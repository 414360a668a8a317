"""Process management for the ngrok agent binary."""

import os
import signal as signal_module
import subprocess
import sys
from collections.abc import Iterable
from pathlib import Path
from types import FrameType
from typing import IO

from .common.exceptions import BinaryNotFoundError, LaunchError, ProcessError
from .common.logging import get_logger

logger = get_logger(__name__)

FORWARDED_SIGNALS = tuple(
    getattr(signal_module, name)
    for name in ("SIGHUP", "SIGINT", "SIGTERM", "SIGQUIT")
    if hasattr(signal_module, name)
)


class ProcessManager:
    """Owns the lifetime of one agent process.

    The agent's stdout (with stderr merged in) is exposed as a byte stream so
    the readiness scanner can read it.
    """

    def __init__(self, binary_path: str, ignore_signals: bool = False):
        """Initialize ProcessManager with the agent binary path

        Args:
            binary_path: Path to the ngrok binary
            ignore_signals: Start the agent in its own session so signals sent
                to this process group are not delivered to it

        Raises:
            BinaryNotFoundError: If binary doesn't exist or isn't executable
        """
        self.binary_path = binary_path
        self.ignore_signals = ignore_signals
        self._process: subprocess.Popen[bytes] | None = None
        self._validate_binary()
        logger.debug(
            "ProcessManager initialized",
            binary_path=binary_path,
            ignore_signals=ignore_signals,
        )

    def _validate_binary(self) -> None:
        binary_path = Path(self.binary_path)

        if not binary_path.exists():
            raise BinaryNotFoundError(f"Binary not found: {self.binary_path}")

        if not binary_path.is_file():
            raise BinaryNotFoundError(f"Binary path is not a file: {self.binary_path}")

        if not os.access(self.binary_path, os.X_OK):
            raise BinaryNotFoundError(f"Binary is not executable: {self.binary_path}")

    def start(self, arguments: list[str]) -> "subprocess.Popen[bytes]":
        """Start the agent with the given arguments

        Returns:
            The running process handle

        Raises:
            ProcessError: If a process is already running
            LaunchError: If the binary cannot be executed
        """
        if self.is_running():
            raise ProcessError(f"Agent process already running (pid {self.pid})")

        logger.info("Starting agent process", binary_path=self.binary_path)
        try:
            self._process = subprocess.Popen(
                [self.binary_path, *arguments],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=self.ignore_signals,
            )
        except OSError as e:
            logger.error("Failed to start agent process", error=str(e))
            raise LaunchError(f"Failed to start agent process: {e}") from e

        logger.info("Agent process started", pid=self._process.pid)
        return self._process

    def run_once(self, arguments: list[str], timeout: float = 30.0) -> str:
        """Run a short-lived agent command to completion

        Returns:
            The command's stdout

        Raises:
            LaunchError: If the binary cannot be executed
            ProcessError: If the command fails, times out or writes to stderr
        """
        try:
            result = subprocess.run(
                [self.binary_path, *arguments],
                capture_output=True,
                text=True,
                timeout=timeout,
                start_new_session=self.ignore_signals,
            )
        except subprocess.TimeoutExpired as e:
            raise ProcessError(f"Agent command timed out after {timeout}s") from e
        except OSError as e:
            raise LaunchError(f"Failed to run agent command: {e}") from e

        if result.returncode != 0 or result.stderr.strip():
            raise ProcessError(
                result.stderr.strip() or f"Agent command exited with {result.returncode}"
            )
        return result.stdout

    @property
    def stdout(self) -> IO[bytes]:
        """Byte stream of the agent's combined output

        Raises:
            ProcessError: If the agent was never started
        """
        if self._process is None or self._process.stdout is None:
            raise ProcessError("Agent process has not been started")
        return self._process.stdout

    def terminate(self) -> None:
        """Kill the agent process

        Raises:
            ProcessError: If no process is running or the kill fails
        """
        process = self._require_running()
        logger.info("Killing agent process", pid=process.pid)
        try:
            process.kill()
        except OSError as e:
            raise ProcessError(f"Failed to kill agent process: {e}") from e

    def signal(self, sig: int) -> None:
        """Send ``sig`` to the agent process

        Raises:
            ProcessError: If no process is running or the signal cannot be sent
        """
        process = self._require_running()
        logger.debug("Forwarding signal to agent", pid=process.pid, signal=sig)
        try:
            process.send_signal(sig)
        except OSError as e:
            raise ProcessError(f"Failed to send signal {sig}: {e}") from e

    def wait(self, timeout: float | None = None) -> int:
        """Wait for the agent to exit and return its exit code

        Raises:
            ProcessError: If the agent was never started or did not exit in time
        """
        if self._process is None:
            raise ProcessError("Agent process has not been started")
        try:
            return self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise ProcessError(f"Agent did not exit within {timeout}s") from e

    def install_signal_forwarding(
        self, signals: Iterable[int] = FORWARDED_SIGNALS
    ) -> None:
        """Forward termination signals to the agent, then exit with status 1.

        Must be called from the main thread.
        """

        def _forward(signum: int, _frame: FrameType | None) -> None:
            logger.warning("Received signal, forwarding to agent", signal=signum)
            try:
                self.signal(signum)
            except ProcessError as e:
                logger.error("Signal forwarding failed", error=str(e))
            sys.exit(1)

        for sig in signals:
            signal_module.signal(sig, _forward)

    def is_running(self) -> bool:
        """Check if the agent process is currently running"""
        if self._process is None:
            return False

        return self._process.poll() is None

    @property
    def pid(self) -> int | None:
        """Process ID while running"""
        if self.is_running() and self._process:
            return self._process.pid
        return None

    def _require_running(self) -> "subprocess.Popen[bytes]":
        if self._process is None or not self.is_running():
            raise ProcessError("No agent process is running")
        return self._process
