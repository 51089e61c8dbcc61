"""Test supervision of the local `bw serve` process."""

import sys

import pytest

from secretsync.errors import TransportError
from secretsync.services.bw_serve import BitwardenServeProcess

SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]


@pytest.mark.stores
class TestBitwardenServeProcess:
    """Test starting and stopping the server process."""

    def test_start_and_stop(self):
        """Test that the process runs until stopped."""
        process = BitwardenServeProcess(SLEEPER, startup_wait=0.1)

        with process:
            assert process.is_running()
            assert process.pid is not None

        assert not process.is_running()
        assert process.pid is None

    def test_missing_command(self):
        """Test that an unknown executable is reported as a transport error."""
        process = BitwardenServeProcess(["secretsync-no-such-bw", "serve"], startup_wait=0)

        with pytest.raises(TransportError) as exc_info:
            process.start()

        assert exc_info.value.error_code == "bw_serve_failed"

    def test_exit_during_startup(self):
        """Test that a server which dies while starting is reported."""
        process = BitwardenServeProcess(
            [sys.executable, "-c", "import sys; sys.exit(3)"], startup_wait=2.0
        )

        with pytest.raises(TransportError) as exc_info:
            process.start()

        assert exc_info.value.error_code == "bw_serve_exited"
        assert not process.is_running()

    def test_stop_without_start(self):
        """Test that stopping an idle supervisor is a no-op."""
        BitwardenServeProcess(SLEEPER).stop()
