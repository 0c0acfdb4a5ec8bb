from __future__ import annotations

import base64
import binascii
import logging
from typing import Awaitable, Callable

import httpx

from ..errors import IntegrationError
from ..httpclient import request_json
from ..utils import log_event

SERVICE = "imagen"

TokenProvider = Callable[[], Awaitable[str]]


class ImagenGenerator:
    """Vertex AI Imagen predict endpoint, one image per prompt."""

    def __init__(
        self,
        project: str,
        location: str,
        model: str,
        token_provider: TokenProvider,
        *,
        aspect_ratio: str = "16:9",
        timeout_seconds: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.project = project
        self.location = location
        self.model = model
        self.token_provider = token_provider
        self.aspect_ratio = aspect_ratio
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.logger = logger or logging.getLogger("docpress.adapters.imagen")

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project}"
            f"/locations/{self.location}/publishers/google/models/{self.model}:predict"
        )

    async def generate(self, prompt: str) -> bytes:
        token = await self.token_provider()
        payload = await request_json(
            "POST",
            self.endpoint,
            service=SERVICE,
            headers={"Authorization": f"Bearer {token}"},
            json_body={
                "instances": [{"prompt": prompt}],
                "parameters": {"sampleCount": 1, "aspectRatio": self.aspect_ratio},
            },
            timeout=self.timeout_seconds,
            transport=self.transport,
        )
        predictions = payload.get("predictions") if isinstance(payload, dict) else None
        if not predictions or not predictions[0].get("bytesBase64Encoded"):
            raise IntegrationError("imagen_no_image", code="INVALID_RESPONSE", service=SERVICE)
        try:
            data = base64.b64decode(predictions[0]["bytesBase64Encoded"])
        except (binascii.Error, ValueError) as exc:
            raise IntegrationError("imagen_bad_image", code="INVALID_RESPONSE", service=SERVICE) from exc
        log_event(self.logger, logging.INFO, "image_generated", bytes=len(data))
        return data
