"""
Pytest configuration and fixtures for ollama_stream tests.
"""

import json
import socketserver
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from types import SimpleNamespace

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from ollama_stream.core.config import ClientConfig


class ThreadedTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


class OllamaStreamHandler(BaseHTTPRequestHandler):
    """Mimics Ollama's streaming endpoints.

    Streams use chunked transfer encoding like the real server; each prepared
    chunk goes out as one HTTP chunk, flushed on its own.
    """

    protocol_version = "HTTP/1.1"

    def _json_response(self, data: dict, status: int = 200):
        payload = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def do_GET(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        if self.path == "/api/tags":
            status = state.get("tags_status", 200)
            if status != 200:
                self._json_response({"error": "tags unavailable"}, status=status)
                return
            self._json_response({"models": state["models"]})
            return

        self._json_response({"error": "not found"}, status=404)

    def do_POST(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length) if length else b"{}"
        try:
            payload = json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError:
            payload = {}

        if self.path not in ("/api/chat", "/api/generate"):
            self._json_response({"error": "not found"}, status=404)
            return

        state.setdefault("requests", []).append((self.path, payload))

        status = state.get("status", 200)
        if status != 200:
            body = state.get("error_body", b'{"error":"internal error"}')
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return

        self.send_response(200)
        self.send_header("Content-Type", "application/x-ndjson")
        self.send_header("Transfer-Encoding", "chunked")
        self.end_headers()
        delay = state.get("chunk_delay", 0.0)
        try:
            for chunk in state.get("chunks", []):
                if not chunk:
                    continue
                self.wfile.write(f"{len(chunk):X}\r\n".encode() + chunk + b"\r\n")
                self.wfile.flush()
                if delay:
                    time.sleep(delay)
            if state.get("abort"):
                # Drop the connection without the terminating chunk.
                self.close_connection = True
                return
            self.wfile.write(b"0\r\n\r\n")
            self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            # Client went away (cancellation tests).
            return

    def log_message(self, format, *args):
        # Suppress default HTTP server logging to keep test output clean.
        return


@pytest.fixture
def ollama_server():
    """Start a lightweight HTTP server that streams prepared NDJSON chunks."""
    state = {
        "models": [
            {"name": "llama3.2:latest", "size": 2019393189},
            {"name": "qwen3:30b", "size": 8988124069},
        ],
        "tags_status": 200,
        "status": 200,
        "chunks": [],
        "chunk_delay": 0.0,
    }

    server = ThreadedTCPServer(("127.0.0.1", 0), OllamaStreamHandler)
    server.server_state = state  # type: ignore[attr-defined]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    base_url = f"http://127.0.0.1:{server.server_address[1]}"

    try:
        yield SimpleNamespace(base_url=base_url, state=state)
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def server_config(ollama_server):
    """ClientConfig pointing at the local test server."""
    return ClientConfig(base_url=ollama_server.base_url, read_timeout=5.0)


@pytest.fixture
def chat_frames():
    """A two-event chat stream: one partial message and the terminal frame."""
    return [
        {
            "model": "llama3.2",
            "created_at": "2025-11-05T11:00:00.123456789Z",
            "message": {"role": "assistant", "content": "Hel"},
            "done": False,
        },
        {
            "model": "llama3.2",
            "created_at": "2025-11-05T11:00:00.223456789Z",
            "message": {"role": "assistant", "content": "lo"},
            "done": True,
            "done_reason": "stop",
            "total_duration": 500_000_000,
            "load_duration": 200_000_000,
            "prompt_eval_count": 12,
            "prompt_eval_duration": 100_000_000,
            "eval_count": 2,
            "eval_duration": 200_000_000,
        },
    ]


@pytest.fixture
def generate_frames():
    """Generate stream spelling "Hello" over two events."""
    return [
        {"model": "m", "response": "He", "done": False},
        {"model": "m", "response": "llo", "done": True, "context": [1, 2, 3]},
    ]


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset global metrics before and after each test to ensure isolation."""
    from ollama_stream.telemetry.metrics import MetricsCollector

    MetricsCollector.reset()
    yield
    MetricsCollector.reset()
