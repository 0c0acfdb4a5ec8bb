from __future__ import annotations

import json
import logging
from typing import Any

import httpx
import jsonschema

from ..errors import IntegrationError
from ..httpclient import request_json
from ..utils import log_event

SERVICE = "llm"


class ChatClient:
    """Minimal OpenAI-compatible chat completions client."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        model: str,
        *,
        temperature: float = 0.7,
        timeout_seconds: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.logger = logger or logging.getLogger("docpress.llm")

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        json_mode: bool = False,
        temperature: float | None = None,
    ) -> str:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        response = await request_json(
            "POST",
            _join_url(self.base_url, "/chat/completions"),
            service=SERVICE,
            headers=_auth_headers(self.api_key),
            json_body=payload,
            timeout=self.timeout_seconds,
            transport=self.transport,
        )
        content = _read_openai(response)
        log_event(
            self.logger,
            logging.DEBUG,
            "llm_completion",
            model=self.model,
            chars=len(content),
        )
        return content

    async def complete_json(
        self,
        messages: list[dict[str, str]],
        schema: dict[str, Any] | None = None,
        *,
        temperature: float | None = None,
    ) -> Any:
        raw = await self.complete(messages, json_mode=True, temperature=temperature)
        parsed = _maybe_parse_json(raw)
        if isinstance(parsed, str):
            raise IntegrationError("llm_invalid_json", code="INVALID_RESPONSE", service=SERVICE)
        if schema is not None:
            try:
                jsonschema.validate(parsed, schema)
            except jsonschema.ValidationError as exc:
                raise IntegrationError(
                    f"llm_schema_error: {exc.message}", code="INVALID_RESPONSE", service=SERVICE
                ) from exc
        return parsed


def _read_openai(response: Any) -> str:
    choices = response.get("choices") if isinstance(response, dict) else None
    if not choices:
        raise IntegrationError("openai_missing_choices", code="INVALID_RESPONSE", service=SERVICE)
    content = (choices[0].get("message") or {}).get("content")
    if not content:
        raise IntegrationError("openai_empty_content", code="INVALID_RESPONSE", service=SERVICE)
    return content


def _auth_headers(api_key: str | None) -> dict[str, str]:
    if not api_key:
        return {}
    return {"Authorization": f"Bearer {api_key}"}


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def _maybe_parse_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw
