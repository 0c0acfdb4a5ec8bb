from __future__ import annotations

import json
from typing import Any

import httpx

from .errors import IntegrationError


async def send(
    method: str,
    url: str,
    *,
    service: str,
    headers: dict[str, str] | None = None,
    json_body: Any = None,
    content: bytes | None = None,
    params: dict[str, Any] | None = None,
    auth: httpx.Auth | tuple[str, str] | None = None,
    timeout: float = 30,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.request(
                method,
                url,
                headers=headers,
                json=json_body,
                content=content,
                params=params,
                auth=auth,
            )
    except httpx.TimeoutException as exc:
        raise IntegrationError(f"timeout: {exc}", code="TIMEOUT", service=service) from exc
    except httpx.RequestError as exc:
        raise IntegrationError(f"network_error: {exc}", code="NETWORK_ERROR", service=service) from exc
    if response.status_code >= 400:
        raise IntegrationError(
            f"http_error {response.status_code}: {response.text[:500]}",
            code=f"HTTP_{response.status_code}",
            service=service,
        )
    return response


async def request_json(method: str, url: str, *, service: str, **kwargs: Any) -> Any:
    response = await send(method, url, service=service, **kwargs)
    if not response.content:
        return {}
    try:
        return response.json()
    except json.JSONDecodeError as exc:
        raise IntegrationError(
            f"invalid_json: {response.text[:200]}", code="INVALID_RESPONSE", service=service
        ) from exc
