"""Client interfaces for Ollama streaming."""

from ollama_stream.client.async_client import AsyncOllamaStreamClient
from ollama_stream.client.decoding import decode_frame
from ollama_stream.client.framing import FrameBuffer, aiter_frames, iter_frames
from ollama_stream.client.payloads import build_payload, encode_request, merge_options
from ollama_stream.client.session import AsyncStreamingSession, SessionState, StreamingSession
from ollama_stream.client.sync import OllamaStreamClient

__all__ = [
    "AsyncOllamaStreamClient",
    "AsyncStreamingSession",
    "FrameBuffer",
    "OllamaStreamClient",
    "SessionState",
    "StreamingSession",
    "aiter_frames",
    "build_payload",
    "decode_frame",
    "encode_request",
    "iter_frames",
    "merge_options",
]
