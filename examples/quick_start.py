"""
Quick Start Example - Streaming from Ollama

This example shows the streaming client against a local Ollama server
(OLLAMA_BASE_URL, default http://localhost:11434).
"""

import asyncio
import sys

from ollama_stream import (
    AsyncOllamaStreamClient,
    ChatRequest,
    CompletionOptions,
    GenerateRequest,
    Message,
    OllamaStreamClient,
    ServerReportedError,
    TransportError,
    accumulate_chat,
)
from ollama_stream.telemetry import MetricsCollector

MODEL = "llama3.2"


def example_generate_stream(client: OllamaStreamClient):
    """Print a generate stream as it arrives."""
    print("Example 1: Generate Stream")
    print("-" * 40)

    request = GenerateRequest(model=MODEL, prompt="Explain quantum computing in one sentence.")
    for event in client.generate(request):
        print(event.response, end="", flush=True)
        if event.done and event.usage and event.usage.tokens_per_second:
            print(f"\n[{event.usage.eval_count} tokens, {event.usage.tokens_per_second:.1f} tok/s]")


def example_chat_with_options(client: OllamaStreamClient):
    """Chat with generation options and collect the full reply."""
    print("\nExample 2: Chat With Options")
    print("-" * 40)

    request = ChatRequest(
        model=MODEL,
        messages=[Message.system("Answer in five words."), Message.user("What is Python?")],
        options=CompletionOptions(temperature=0.7, top_p=0.9, num_predict=50),
    )
    transcript = accumulate_chat(client.chat(request))
    print(f"Assistant: {transcript.content}")


def example_cancel(client: OllamaStreamClient):
    """Stop a long answer after a few events."""
    print("\nExample 3: Cancellation")
    print("-" * 40)

    request = GenerateRequest(model=MODEL, prompt="Count slowly from one to one hundred.")
    with client.generate(request) as session:
        for count, event in enumerate(session, start=1):
            print(event.response, end="", flush=True)
            if count == 10:
                session.cancel()
    print(f"\n[state: {session.state}]")


def example_capability_fallback(client: OllamaStreamClient):
    """Retry without thinking when the model does not support it."""
    print("\nExample 4: Capability Errors")
    print("-" * 40)

    messages = [Message.user("Is 17 prime?")]
    try:
        transcript = accumulate_chat(client.chat(ChatRequest(model=MODEL, messages=messages, think=True)))
    except ServerReportedError as exc:
        if not exc.does_not_support("thinking"):
            raise
        print(f"Server said: {exc.message}; retrying without think")
        transcript = accumulate_chat(client.chat(ChatRequest(model=MODEL, messages=messages)))
    print(f"Assistant: {transcript.content}")


async def example_async():
    """Stream with the async client."""
    print("\nExample 5: Async Client")
    print("-" * 40)

    async with AsyncOllamaStreamClient() as client:
        request = GenerateRequest(model=MODEL, prompt="Write a haiku about programming.")
        async for event in client.generate(request):
            print(event.response, end="", flush=True)
    print()


if __name__ == "__main__":
    print("Ollama Stream - Quick Start Examples")
    print("=" * 50)

    try:
        with OllamaStreamClient() as client:
            if not client.health_check():
                print(f"Ollama is not reachable at {client.config.base_url}")
                sys.exit(1)
            print(f"Available models: {[m['name'] for m in client.list_models()]}\n")

            example_generate_stream(client)
            example_chat_with_options(client)
            example_cancel(client)
            example_capability_fallback(client)
        asyncio.run(example_async())

        print("\n" + "=" * 50)
        print(f"Metrics: {MetricsCollector.get_metrics_json()}")

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
    except TransportError as e:
        print(f"\n✗ Error: {e}")
        sys.exit(1)
