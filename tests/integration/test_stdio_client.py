"""Integration tests for StdioClient against real subprocesses."""

import subprocess
import sys
import threading

import pytest

from mcp_fleet.domain.exceptions import ClientError
from mcp_fleet.domain.model import ProviderConfig
from mcp_fleet.infrastructure.launcher import SubprocessLauncher
from mcp_fleet.infrastructure.stdio_client import StdioClient

pytestmark = pytest.mark.integration

ECHO_SCRIPT = """
import sys
import json

for line in sys.stdin:
    req = json.loads(line)
    if "id" not in req:
        continue
    resp = {"jsonrpc": "2.0", "id": req["id"], "result": {"echo": req.get("method"), "params": req.get("params")}}
    print(json.dumps(resp), flush=True)
"""


def _spawn(script: str) -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-c", script],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )


@pytest.fixture
def echo_server():
    process = _spawn(ECHO_SCRIPT)
    yield process
    if process.poll() is None:
        process.kill()
        process.wait(timeout=5)


class TestStdioClient:
    """Tests for request/response routing over stdio."""

    def test_basic_call(self, echo_server):
        with StdioClient(echo_server, provider_id="echo") as client:
            response = client.call("test_method", {"arg1": "value1"}, timeout=5.0)

        assert response["result"]["echo"] == "test_method"
        assert response["result"]["params"] == {"arg1": "value1"}

    def test_notification_gets_no_response(self, echo_server):
        with StdioClient(echo_server) as client:
            client.notify("notifications/initialized")
            response = client.call("after", timeout=5.0)

        assert response["result"]["echo"] == "after"

    def test_timeout(self):
        process = _spawn("import sys, time\nfor line in sys.stdin:\n    time.sleep(100)\n")
        client = StdioClient(process)

        with pytest.raises(TimeoutError):
            client.call("test", {}, timeout=0.5)

        client.close()

    def test_concurrent_calls(self, echo_server):
        client = StdioClient(echo_server)
        results = {}
        errors = []

        def make_call(call_id):
            try:
                results[call_id] = client.call("method", {"n": call_id}, timeout=5.0)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=make_call, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        client.close()

        assert errors == []
        assert all(results[i]["result"]["params"]["n"] == i for i in range(10))

    def test_process_death_fails_pending_and_later_calls(self):
        script = "import sys\nsys.stdin.readline()\nsys.exit(0)\n"
        process = _spawn(script)
        client = StdioClient(process)

        response = client.call("test", {}, timeout=5.0)
        process.wait(timeout=5.0)

        assert response["error"]["message"] == "reader_died"
        assert not client.is_alive()
        with pytest.raises(ClientError):
            client.call("again", {}, timeout=1.0)
        client.close()

    def test_closed_client_rejects_calls(self, echo_server):
        client = StdioClient(echo_server)
        client.close()

        with pytest.raises(ClientError):
            client.call("test", {}, timeout=1.0)
        with pytest.raises(ClientError):
            client.notify("test")

    def test_close_terminates_process(self, echo_server):
        with StdioClient(echo_server) as client:
            client.call("test", timeout=5.0)

        assert echo_server.poll() is not None

    def test_undecodable_output_is_skipped(self):
        script = (
            "import json, sys\n"
            "req = json.loads(sys.stdin.readline())\n"
            "sys.stdout.buffer.write(b'\\xff\\n')\n"
            "sys.stdout.buffer.flush()\n"
            "print(json.dumps({'jsonrpc': '2.0', 'id': req['id'], 'result': {'ok': True}}), flush=True)\n"
            "sys.stdin.readline()\n"
        )
        config = ProviderConfig(provider_id="noisy", command=sys.executable, args=("-c", script))
        process = SubprocessLauncher().launch(config)

        with StdioClient(process, provider_id="noisy") as client:
            response = client.call("test", timeout=5.0)
            assert client.is_alive()

        assert response["result"] == {"ok": True}

    def test_process_outliving_its_stdout_is_terminated(self):
        process = _spawn("import os, time\nos.close(1)\ntime.sleep(60)\n")
        client = StdioClient(process)

        assert process.wait(timeout=10) != 0
        assert not client.is_alive()
        client.close()
