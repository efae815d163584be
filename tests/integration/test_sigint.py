"""
End-to-end: run ``python -m restshell`` and stop it with a real SIGINT.
"""

import http.client
import os
import signal
import socket
import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest


HERE = Path(__file__).resolve().parent
SRC = HERE.parent.parent / "src"

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")


def wait_for_ping(port: int, timeout: float = 10.0) -> int:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        conn = http.client.HTTPConnection("127.0.0.1", port, timeout=1)
        try:
            conn.request("GET", "/ping")
            response = conn.getresponse()
            response.read()
            return response.status
        except OSError:
            time.sleep(0.1)
        finally:
            conn.close()
    raise RuntimeError(f"server on port {port} never answered")


def spawn(*args: str) -> subprocess.Popen:
    env = dict(os.environ)
    # HERE makes slow_manager importable for --manager
    env["PYTHONPATH"] = os.pathsep.join([str(SRC), str(HERE), env.get("PYTHONPATH", "")])
    env["PYTHONIOENCODING"] = "utf-8"
    return subprocess.Popen(
        [sys.executable, "-m", "restshell", *args],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
    )


class TestSigint:

    def test_sigint_drains_and_exits_zero(self, free_port):
        proc = spawn("--addr", f"127.0.0.1:{free_port}", "--shutdown-timeout", "5")
        try:
            assert wait_for_ping(free_port) == 200

            proc.send_signal(signal.SIGINT)
            _, stderr = proc.communicate(timeout=15)
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        text = stderr.decode("utf-8")
        assert proc.returncode == 0, text
        assert "👉 GET /ping" in text
        assert "Serving at 🔥 127.0.0.1:" in text
        assert "Shutting down. Goodbye.." in text

    def test_bad_manager_exits_two(self, free_port):
        proc = spawn("--addr", f"127.0.0.1:{free_port}", "--manager", "no_such_module:Thing")
        _, stderr = proc.communicate(timeout=15)

        assert proc.returncode == 2
        assert b"Startup failed" in stderr

    def test_port_in_use_exits_one(self, free_port):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", free_port))
            blocker.listen(1)

            proc = spawn("--addr", f"127.0.0.1:{free_port}")
            _, stderr = proc.communicate(timeout=15)

        assert proc.returncode == 1
        assert b"HTTP server ListenAndServe" in stderr

    def test_drain_deadline_exits_one(self, free_port):
        proc = spawn(
            "--addr", f"127.0.0.1:{free_port}",
            "--shutdown-timeout", "1",
            "--manager", "slow_manager:SlowManager",
        )
        try:
            assert wait_for_ping(free_port) == 200

            def slow_request():
                conn = http.client.HTTPConnection("127.0.0.1", free_port, timeout=10)
                try:
                    conn.request("GET", "/slow")
                    conn.getresponse().read()
                except (OSError, http.client.HTTPException):
                    pass  # aborted at the deadline
                finally:
                    conn.close()

            client = threading.Thread(target=slow_request, daemon=True)
            client.start()
            time.sleep(1.0)

            proc.send_signal(signal.SIGINT)
            _, stderr = proc.communicate(timeout=15)
            client.join(5.0)
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        text = stderr.decode("utf-8")
        assert proc.returncode == 1, text
        assert "slow request started" in text
        critical = [line for line in text.splitlines() if "[CRITICAL]" in line]
        assert len(critical) == 1, text
        assert "1 connection(s) still active after 1s drain deadline" in critical[0]
        assert "Shutting down. Goodbye.." not in text
