from __future__ import annotations  # LLM request gateway module

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config import LlmRoute


logger = logging.getLogger(__name__)  # Module logger setup

_PLACEHOLDER_SUFFIX = "_here"
_MIN_KEY_LENGTH = 30

_ROUTE_LOCKS: Dict[str, asyncio.Lock] = {}


class HttpClient(Protocol):  # Minimal async HTTP client protocol
    async def post(self, url: str, *, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> "HttpResponse": ...


class HttpResponse(Protocol):  # Minimal HTTP response protocol
    @property
    def status_code(self) -> int: ...

    def json(self) -> Any: ...

    @property
    def text(self) -> str: ...


class LlmGatewayError(RuntimeError):  # Base gateway error
    pass


T = TypeVar("T", bound=BaseModel)


def _lock_for(cfg: LlmRoute) -> asyncio.Lock:
    key = cfg.name or f"{cfg.base_url}{cfg.endpoint}"
    lock = _ROUTE_LOCKS.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _ROUTE_LOCKS[key] = lock
    return lock


def api_key_available(cfg: LlmRoute) -> bool:
    """Return True when the route needs no key or its key looks usable."""

    if not cfg.api_key_env:
        return True
    key = os.getenv(cfg.api_key_env)
    if key is None or key == "undefined":
        logger.warning("API key %s is missing", cfg.api_key_env)
        return False
    key = key.strip()
    if not key:
        logger.warning("API key %s is empty", cfg.api_key_env)
        return False
    if key.startswith("your_") and key.endswith(_PLACEHOLDER_SUFFIX):
        logger.warning("API key %s is still the placeholder value", cfg.api_key_env)
        return False
    if cfg.api_key_prefix and not key.startswith(cfg.api_key_prefix):
        logger.warning("API key %s should start with %r", cfg.api_key_env, cfg.api_key_prefix)
        return False
    if len(key) < _MIN_KEY_LENGTH:
        logger.warning("API key %s seems too short", cfg.api_key_env)
        return False
    return True


async def call(
    task: str,
    schema: Type[T],
    *,
    cfg: LlmRoute,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> T:  # Invoke configured LLM route and validate output
    return await chat(
        [{"role": "user", "content": task}],
        schema,
        cfg=cfg,
        client=client,
        options=options,
    )


async def chat(
    messages: Sequence[Dict[str, str]],
    schema: Type[T],
    *,
    cfg: LlmRoute,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> T:
    async def _execute() -> T:
        base_messages: list[Dict[str, str]] = []
        if cfg.enforce_json:
            schema_json = json.dumps(schema.model_json_schema(), indent=2)
            system_prompt = "Reply with a single JSON object matching this schema:\n" + schema_json
            base_messages.append({"role": "system", "content": system_prompt})
        base_messages.extend(_normalize_messages(messages))
        attempts = cfg.max_retries + 1
        last_error: Optional[Exception] = None
        last_error_text: Optional[str] = None
        for attempt in range(attempts):
            attempt_messages = list(base_messages)
            if attempt > 0:
                attempt_messages.append(
                    {
                        "role": "system",
                        "content": _retry_hint(last_error_text, cfg.enforce_json),
                    }
                )
            extra = dict(options or {})
            if cfg.response_format:
                extra["response_format"] = {"type": cfg.response_format}
            content, model = await _complete(attempt_messages, cfg, client, extra, attempt=attempt)
            try:
                parsed = _validate(schema, content)
            except (json.JSONDecodeError, ValidationError) as exc:
                logger.warning("LLM output validation failed model=%s: %s", model, exc)
                last_error = exc
                last_error_text = str(exc)
                continue
            logger.info("LLM request done route=%s model=%s attempt=%d", cfg.name, model, attempt + 1)
            return parsed
        raise LlmGatewayError("LLM output validation failed") from last_error

    if cfg.sequential:
        async with _lock_for(cfg):
            return await _execute()
    return await _execute()


async def chat_text(
    messages: Sequence[Dict[str, str]],
    *,
    cfg: LlmRoute,
    client: Optional[HttpClient] = None,
    options: Optional[Dict[str, Any]] = None,
) -> str:
    """Return the raw completion text without schema validation."""

    normalized = _normalize_messages(messages)
    if cfg.sequential:
        async with _lock_for(cfg):
            content, _ = await _complete(normalized, cfg, client, dict(options or {}))
    else:
        content, _ = await _complete(normalized, cfg, client, dict(options or {}))
    return content


async def check_connection(cfg: LlmRoute, *, client: Optional[HttpClient] = None) -> Dict[str, Any]:
    """Send a one-line probe and report whether the route answers."""

    try:
        content = await chat_text(
            [
                {"role": "system", "content": "You are a helpful assistant."},
                {"role": "user", "content": "Respond with 'Test successful' and nothing else."},
            ],
            cfg=cfg.model_copy(update={"fallback_models": []}),
            client=client,
        )
    except LlmGatewayError as exc:
        return {"success": False, "error": str(exc)}
    return {"success": True, "message": content}


async def _complete(
    messages: Sequence[Dict[str, str]],
    cfg: LlmRoute,
    client: Optional[HttpClient],
    extra: Dict[str, Any],
    *,
    attempt: int = 0,
) -> Tuple[str, str]:  # Try each configured model until one answers
    if not api_key_available(cfg):
        raise LlmGatewayError(f"API key not available for route {cfg.name}")
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if cfg.api_key_env:
        headers["Authorization"] = f"Bearer {os.getenv(cfg.api_key_env, '').strip()}"
    headers.update(cfg.extra_headers)
    url = f"{cfg.base_url}{cfg.endpoint}"
    preview = _preview(messages)
    if len(preview) > 120:
        preview = preview[:117] + "..."

    last_error: Optional[Exception] = None
    for model in cfg.models():
        payload: Dict[str, Any] = {"model": model, "messages": list(messages)}
        payload.update(extra)
        logger.info(
            "LLM request send route=%s model=%s attempt=%d preview=%s",
            cfg.name,
            model,
            attempt + 1,
            preview,
        )
        try:
            response = await _post(url, payload, headers, cfg.timeout_s, client)
        except httpx.HTTPError as exc:
            logger.warning("LLM transport failure model=%s: %s", model, exc)
            last_error = exc
            continue
        if response.status_code >= 400:
            logger.warning("LLM error status model=%s status=%s body=%s", model, response.status_code, response.text[:200])
            last_error = LlmGatewayError(f"LLM returned status {response.status_code}")
            continue
        try:
            data = response.json()
        except ValueError as exc:
            logger.warning("Invalid JSON payload from LLM model=%s: %s", model, exc)
            last_error = exc
            continue
        return _extract_content(data), model
    logger.error("LLM request failed on every model route=%s", cfg.name)
    raise LlmGatewayError(f"All models failed for route {cfg.name}") from last_error


async def _post(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float, client: Optional[HttpClient]) -> HttpResponse:  # Dispatch HTTP request
    if client is not None:
        return await client.post(url, json=payload, headers=headers, timeout=timeout)
    async with httpx.AsyncClient(timeout=timeout) as http_client:
        return await http_client.post(url, json=payload, headers=headers)


def _normalize_messages(messages: Sequence[Dict[str, str]]) -> list[Dict[str, str]]:  # Ensure message payload shape
    normalized: list[Dict[str, str]] = []
    for item in messages:
        if not isinstance(item, dict):
            raise TypeError("Each chat message must be a dict with role/content")
        role = str(item.get("role", "")).strip()
        content = str(item.get("content", ""))
        if not role:
            raise ValueError("Chat message missing role")
        normalized.append({"role": role, "content": content})
    return normalized


def _preview(messages: Sequence[Dict[str, str]]) -> str:  # Build preview string for logging
    for message in reversed(messages):
        text = message.get("content", "").strip()
        if text:
            return text.splitlines()[0]
    return ""


def _extract_content(data: Any) -> str:  # Extract message content from LLM response
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            message = choices[0].get("message") if isinstance(choices[0], dict) else None
            content = message.get("content") if isinstance(message, dict) else None
            if isinstance(content, str):
                return content
        if isinstance(data.get("content"), str):
            return data["content"]
    raise LlmGatewayError("LLM response missing content")


def _validate(schema: Type[T], content: str) -> T:  # Parse JSON content with schema
    cleaned = _strip_code_fences(content)
    try:
        return schema.model_validate_json(cleaned)
    except (json.JSONDecodeError, ValidationError) as exc:
        adapter = getattr(schema, "from_raw_content", None)
        if callable(adapter):
            try:
                return adapter(cleaned)  # type: ignore[return-value]
            except (ValueError, ValidationError):
                pass
        raise exc


def _strip_code_fences(content: str) -> str:  # Remove common markdown fences from LLM output
    text = content.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        if lines:
            lines = lines[1:]
            while lines and lines[0].strip() == "":
                lines = lines[1:]
            while lines and lines[-1].strip() == "":
                lines = lines[:-1]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines).strip()
    return text


def _retry_hint(error_text: Optional[str], enforce_json: bool) -> str:  # Compose retry instructions including last error
    base = "The previous reply failed validation."
    if error_text:
        truncated = error_text.splitlines()[0].strip()
        if len(truncated) > 200:
            truncated = truncated[:197] + "..."
        base += f" Reason: {truncated}."
    if enforce_json:
        return base + " Return a single JSON object that matches the schema."
    return base + " Follow the requested format precisely."
