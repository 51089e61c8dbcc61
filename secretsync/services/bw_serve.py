"""Supervision of a local `bw serve` process."""

import logging
import subprocess
import threading
from typing import List, Optional

from ..errors import TransportError

logger = logging.getLogger(__name__)


class BitwardenServeProcess:
    """Start `bw serve` for the duration of a sync and stop it afterwards."""

    def __init__(
        self,
        command: List[str],
        startup_wait: float = 5.0,
        cancel_event: Optional[threading.Event] = None,
        stop_timeout: float = 5.0,
    ):
        self.command = command
        self.startup_wait = startup_wait
        self.stop_timeout = stop_timeout
        self._cancel = cancel_event or threading.Event()
        self._process: Optional[subprocess.Popen] = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self) -> "BitwardenServeProcess":
        """Spawn the server and wait for it to come up.

        Raises:
            TransportError: If the command cannot be run or exits during start-up
        """
        if self.is_running():
            return self

        try:
            self._process = subprocess.Popen(
                self.command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise TransportError(
                f"Failed to run '{' '.join(self.command)}': {str(e)}",
                error_code="bw_serve_failed",
                original_error=e,
            ) from e

        logger.info(f"Waiting for bw serve to start up (pid {self._process.pid})")
        self._cancel.wait(self.startup_wait)

        returncode = self._process.poll()
        if returncode is not None:
            self._process = None
            raise TransportError(
                f"bw serve exited during start-up with status {returncode}",
                error_code="bw_serve_exited",
            )
        return self

    def stop(self) -> None:
        """Terminate the server, killing it if it does not exit in time."""
        process = self._process
        if process is None:
            return

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"bw serve (pid {process.pid}) did not exit, killing it")
                process.kill()
                process.wait()

        logger.info(f"Stopped bw serve (pid {process.pid})")
        self._process = None

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
