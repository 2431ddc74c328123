from __future__ import annotations  # Re-export llm_gateway public API

from .llm_gateway import (
    HttpClient,
    HttpResponse,
    LlmGatewayError,
    api_key_available,
    call,
    chat,
    chat_text,
    check_connection,
)

__all__ = [
    "HttpClient",
    "HttpResponse",
    "LlmGatewayError",
    "api_key_available",
    "call",
    "chat",
    "chat_text",
    "check_connection",
]
