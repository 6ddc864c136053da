"""
Behavioral tests for OllamaStreamClient.

End-to-end against the local streaming server (ollama_server fixture):
real sockets, real requests transport, real framing and decoding.
"""

from __future__ import annotations

import threading

import pytest

from ollama_stream import (
    ChatRequest,
    CompletionOptions,
    GenerateRequest,
    Message,
    OllamaStreamClient,
    SessionState,
    accumulate_chat,
)
from ollama_stream.core.config import ClientConfig
from ollama_stream.domain.exceptions import MalformedFrameError, ServerReportedError, TransportError
from ollama_stream.telemetry.metrics import MetricsCollector

from tests.helpers import ndjson, split_every


@pytest.fixture
def client(server_config):
    with OllamaStreamClient(server_config) as client:
        yield client


class TestClientStreaming:
    """End-to-end streaming tests."""

    def test_generate_hello(self, ollama_server, client, generate_frames):
        """Test the two-frame Hello stream over a real socket."""
        ollama_server.state["chunks"] = split_every(ndjson(*generate_frames), 30)

        events = list(client.generate(GenerateRequest(model="m", prompt="a")))

        assert [event.response for event in events] == ["He", "llo"]
        assert events[-1].done is True
        _, payload = ollama_server.state["requests"][0]
        assert payload == {"stream": True, "model": "m", "prompt": "a"}

    def test_chat_with_options(self, ollama_server, client, chat_frames):
        """Test that options go out flat and chat events come back typed."""
        ollama_server.state["chunks"] = [ndjson(*chat_frames)]
        request = ChatRequest(
            model="llama3.2",
            messages=[Message.system("be brief"), Message.user("hi")],
            options=CompletionOptions(temperature=0.8, num_predict=64),
        )

        transcript = accumulate_chat(client.chat(request))

        assert transcript.content == "Hello"
        assert transcript.done is True
        _, payload = ollama_server.state["requests"][0]
        assert payload["temperature"] == 0.8
        assert payload["num_predict"] == 64
        assert "options" not in payload

    def test_unterminated_final_line(self, ollama_server, client):
        """Test that a final frame without newline is still delivered."""
        body = ndjson({"model": "m", "response": "a", "done": False})
        ollama_server.state["chunks"] = [body, b'{"model":"m","response":"b","done":true}']
        events = list(client.generate(GenerateRequest(model="m", prompt="a")))
        assert [event.response for event in events] == ["a", "b"]

    def test_capability_error_status(self, ollama_server, client):
        """Test that a 400 error envelope becomes ServerReportedError with its text."""
        ollama_server.state["status"] = 400
        ollama_server.state["error_body"] = b'{"error":"\\"gemma:2b\\" does not support tools"}'
        request = ChatRequest(model="gemma:2b", messages=[Message.user("hi")], tools=[{"type": "function"}])

        with pytest.raises(ServerReportedError) as exc_info:
            list(client.chat(request))

        assert exc_info.value.does_not_support("tools")
        assert exc_info.value.status_code == 400

    def test_error_frame_mid_stream(self, ollama_server, client):
        """Test that an error frame after partial output fails the stream."""
        ollama_server.state["chunks"] = [
            ndjson({"model": "m", "response": "par", "done": False}, {"error": "context canceled"})
        ]
        session = client.generate(GenerateRequest(model="m", prompt="a"))
        received = []
        with pytest.raises(ServerReportedError, match="context canceled"):
            for event in session:
                received.append(event)
        assert len(received) == 1

    def test_malformed_frame(self, ollama_server, client):
        """Test that a garbage line fails the stream."""
        ollama_server.state["chunks"] = [b"<html>\n"]
        with pytest.raises(MalformedFrameError):
            list(client.generate(GenerateRequest(model="m", prompt="a")))

    def test_connection_dropped_mid_stream(self, ollama_server, client):
        """Test that a body cut off before its end fails with TransportError."""
        ollama_server.state["chunks"] = [ndjson({"model": "m", "response": "a", "done": False})]
        ollama_server.state["abort"] = True
        session = client.generate(GenerateRequest(model="m", prompt="a"))
        received = []
        with pytest.raises(TransportError):
            for event in session:
                received.append(event)
        assert len(received) == 1
        assert session.state is SessionState.FAILED

    def test_read_timeout_is_transport_error(self, ollama_server, server_config):
        """Test that a stalled stream fails once the read deadline fires."""
        ollama_server.state["chunks"] = [
            ndjson({"model": "m", "response": "a", "done": False}),
            ndjson({"model": "m", "response": "b", "done": True}),
        ]
        ollama_server.state["chunk_delay"] = 1.0
        config = server_config.model_copy(update={"read_timeout": 0.2})
        with OllamaStreamClient(config) as client:
            session = client.generate(GenerateRequest(model="m", prompt="a"))
            received = []
            with pytest.raises(TransportError):
                for event in session:
                    received.append(event)
        assert [event.response for event in received] == ["a"]
        assert session.state is SessionState.FAILED

    def test_cancel_releases_connection(self, ollama_server, client):
        """Test that cancelling mid-stream ends iteration without error."""
        ollama_server.state["chunks"] = [
            ndjson({"model": "m", "response": str(i), "done": False}) for i in range(3)
        ] + [ndjson({"model": "m", "response": "", "done": True})]
        ollama_server.state["chunk_delay"] = 0.05
        session = client.generate(GenerateRequest(model="m", prompt="a"))
        received = []
        for event in session:
            received.append(event)
            session.cancel()
        assert len(received) == 1
        assert session.state is SessionState.CANCELLED
        assert MetricsCollector.get_metrics().cancelled_streams == 1

    def test_cancel_from_another_thread_mid_read(self, ollama_server, client):
        """Test that cancelling while the consumer waits on the socket ends the stream quietly."""
        ollama_server.state["chunks"] = [
            ndjson({"model": "m", "response": "a", "done": False}),
            ndjson({"model": "m", "response": "b", "done": True}),
        ]
        ollama_server.state["chunk_delay"] = 1.0
        session = client.generate(GenerateRequest(model="m", prompt="a"))
        first_event = threading.Event()
        received = []
        errors = []

        def consume():
            try:
                for event in session:
                    received.append(event)
                    first_event.set()
            except Exception as exc:
                errors.append(exc)

        consumer = threading.Thread(target=consume)
        consumer.start()
        assert first_event.wait(timeout=5)
        session.cancel()
        consumer.join(timeout=5)

        assert not consumer.is_alive()
        assert errors == []
        assert [event.response for event in received] == ["a"]
        assert session.state is SessionState.CANCELLED


class TestClientNonStreaming:
    """Tests for list_models() and health_check()."""

    def test_list_models(self, client):
        """Test that models come back as dictionaries."""
        models = client.list_models()
        assert [model["name"] for model in models] == ["llama3.2:latest", "qwen3:30b"]

    def test_list_models_error_envelope(self, ollama_server, client):
        """Test that an error status with envelope raises ServerReportedError."""
        ollama_server.state["tags_status"] = 503
        with pytest.raises(ServerReportedError, match="tags unavailable") as exc_info:
            client.list_models()
        assert exc_info.value.status_code == 503

    def test_health_check(self, client):
        """Test that a reachable server is healthy."""
        assert client.health_check() is True

    def test_health_check_unreachable(self):
        """Test that an unreachable server is reported unhealthy, not raised."""
        config = ClientConfig(base_url="http://127.0.0.1:1", health_check_timeout=1)
        with OllamaStreamClient(config) as client:
            assert client.health_check() is False

    def test_list_models_unreachable(self):
        """Test that list_models raises TransportError when the server is down."""
        with OllamaStreamClient(ClientConfig(base_url="http://127.0.0.1:1")) as client:
            with pytest.raises(TransportError):
                client.list_models()
