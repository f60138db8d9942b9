"""
Worker Gateway

OpenAI-compatible HTTP gateway for an on-device language model.

Components:
- models: OpenAI wire schemas
- session: Model lifecycle and generation
- budget: Conversation-to-prompt reduction within the context window
- streaming: Cumulative snapshots to deltas, SSE framing
- server: Gateway listener lifecycle
- api: OpenAI-compatible endpoints
- ollama_client: Ollama generation and embedding capabilities
"""

__version__ = "0.1.0"
