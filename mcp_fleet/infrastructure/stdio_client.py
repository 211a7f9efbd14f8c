"""JSON-RPC 2.0 client over a child process's stdin/stdout.

Messages are newline-delimited JSON, as used by the MCP stdio transport. A
reader thread routes responses to waiting callers by request id, so one client
can serve concurrent calls from many threads.
"""

import itertools
import json
import queue
import subprocess
import threading
from typing import Any

from ..domain.exceptions import ClientError
from ..logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
PROCESS_EXIT_TIMEOUT = 5.0
READER_LOSS_GRACE_S = 1.0

# JSON-RPC error codes
METHOD_NOT_FOUND = -32601
CONNECTION_CLOSED = -32000


class StdioClient:
    """Thread-safe JSON-RPC client bound to one subprocess.

    Usage:
        with StdioClient(process) as client:
            response = client.call("tools/list", {}, timeout=5.0)
            tools = response["result"]["tools"]
    """

    def __init__(self, process: subprocess.Popen, provider_id: str | None = None):
        self.process = process
        self.provider_id = provider_id or f"pid-{process.pid}"
        self._ids = itertools.count(1)
        self._pending: dict[int, queue.Queue] = {}
        self._pending_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._closed = False
        self._reader_alive = True

        self._reader = threading.Thread(
            target=self._read_loop,
            name=f"stdio-reader-{self.provider_id}",
            daemon=True,
        )
        self._reader.start()

        if getattr(process, "stderr", None) is not None:
            threading.Thread(
                target=self._drain_stderr,
                name=f"stdio-stderr-{self.provider_id}",
                daemon=True,
            ).start()

    # --- Context manager ---

    def __enter__(self) -> "StdioClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- Public API ---

    def is_alive(self) -> bool:
        """True while the client is open and the process is running."""
        return not self._closed and self._reader_alive and self.process.poll() is None

    def call(self, method: str, params: dict[str, Any] | None = None, timeout: float = DEFAULT_TIMEOUT) -> dict:
        """
        Send a request and wait for its response.

        Args:
            method: JSON-RPC method name
            params: Request parameters
            timeout: Seconds to wait for the response

        Returns:
            The raw response message (contains "result" or "error")

        Raises:
            ClientError: If the client is closed or the request cannot be written
            TimeoutError: If no response arrives within timeout
        """
        if self._closed:
            raise ClientError("client_closed")
        if not self._reader_alive:
            raise ClientError("reader_died")

        request_id = next(self._ids)
        waiter: queue.Queue = queue.Queue(maxsize=1)
        with self._pending_lock:
            self._pending[request_id] = waiter

        try:
            self._write({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}})
            try:
                return waiter.get(timeout=timeout)
            except queue.Empty:
                raise TimeoutError(f"timeout: {method} after {timeout}s") from None
        finally:
            with self._pending_lock:
                self._pending.pop(request_id, None)

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification (no response expected)."""
        if self._closed:
            raise ClientError("client_closed")
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params:
            message["params"] = params
        self._write(message)

    def close(self) -> None:
        """Close pipes and terminate the process. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._fail_pending("client_closed")

        if self.process.stdin:
            try:
                self.process.stdin.close()
            except OSError as e:
                logger.debug("stdin_close_failed", provider_id=self.provider_id, error=str(e))

        self._terminate()

    def _terminate(self) -> None:
        if self.process.poll() is not None:
            return
        self.process.terminate()
        try:
            self.process.wait(timeout=PROCESS_EXIT_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("process_kill_after_terminate_timeout", provider_id=self.provider_id)
            self.process.kill()
            self.process.wait(timeout=PROCESS_EXIT_TIMEOUT)

    # --- Internals ---

    def _write(self, message: dict[str, Any]) -> None:
        line = json.dumps(message) + "\n"
        with self._write_lock:
            try:
                self.process.stdin.write(line)
                self.process.stdin.flush()
            except (OSError, ValueError, AttributeError) as e:
                raise ClientError(f"write_failed: {e}") from e

    def _read_loop(self) -> None:
        try:
            for line in self.process.stdout:
                line = line.strip()
                if not line:
                    continue
                try:
                    message = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("stdio_non_json_line", provider_id=self.provider_id, line=line[:200])
                    continue
                if isinstance(message, dict):
                    self._dispatch(message)
        except (OSError, ValueError) as e:
            if not self._closed:
                logger.debug("stdio_reader_error", provider_id=self.provider_id, error=str(e))
        finally:
            self._reader_alive = False
            self._fail_pending("reader_died")
            if not self._closed:
                self._end_orphaned_process()

    def _end_orphaned_process(self) -> None:
        """Terminate a process that outlives its stdout reader."""
        try:
            # EOF usually means the process is already exiting
            self.process.wait(timeout=READER_LOSS_GRACE_S)
        except subprocess.TimeoutExpired:
            logger.warning("stdio_reader_lost_terminating_process", provider_id=self.provider_id)
            self._terminate()

    def _dispatch(self, message: dict[str, Any]) -> None:
        if "method" in message:
            # Server-initiated request or notification
            if "id" in message:
                self._answer_server_request(message)
            else:
                logger.debug("stdio_notification", provider_id=self.provider_id, method=message["method"])
            return

        request_id = message.get("id")
        with self._pending_lock:
            waiter = self._pending.get(request_id)
        if waiter is None:
            logger.debug("stdio_orphan_response", provider_id=self.provider_id, request_id=request_id)
            return
        waiter.put(message)

    def _answer_server_request(self, message: dict[str, Any]) -> None:
        if message["method"] == "ping":
            reply: dict[str, Any] = {"jsonrpc": "2.0", "id": message["id"], "result": {}}
        else:
            reply = {
                "jsonrpc": "2.0",
                "id": message["id"],
                "error": {"code": METHOD_NOT_FOUND, "message": f"method_not_supported: {message['method']}"},
            }
        try:
            self._write(reply)
        except ClientError as e:
            logger.debug("stdio_reply_failed", provider_id=self.provider_id, error=str(e))

    def _fail_pending(self, reason: str) -> None:
        with self._pending_lock:
            waiters = list(self._pending.values())
        for waiter in waiters:
            try:
                waiter.put_nowait({"error": {"code": CONNECTION_CLOSED, "message": reason}})
            except queue.Full:
                pass

    def _drain_stderr(self) -> None:
        try:
            for line in self.process.stderr:
                line = line.rstrip()
                if line:
                    logger.debug("provider_stderr", provider_id=self.provider_id, line=line[:500])
        except (OSError, ValueError):
            pass
