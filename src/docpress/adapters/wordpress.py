from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import IntegrationError
from ..httpclient import request_json
from ..models import DraftPost, MediaUpload
from ..utils import log_event

SERVICE = "wordpress"


class WordPressPublisher:
    """WordPress REST API client authenticated with an application password."""

    def __init__(
        self,
        site_url: str,
        username: str,
        app_password: str,
        *,
        timeout_seconds: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.site_url = site_url.rstrip("/")
        self.auth = (username, app_password)
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.logger = logger or logging.getLogger("docpress.adapters.wordpress")

    def _api(self, path: str) -> str:
        return f"{self.site_url}/wp-json/wp/v2{path}"

    def edit_link(self, post_id: int) -> str:
        return f"{self.site_url}/wp-admin/post.php?post={post_id}&action=edit"

    async def create_draft(
        self,
        title: str,
        content: str,
        *,
        status: str = "draft",
        featured_media: int | None = None,
    ) -> DraftPost:
        body: dict[str, Any] = {"title": title, "content": content, "status": status}
        if featured_media:
            body["featured_media"] = featured_media
        payload = await request_json(
            "POST",
            self._api("/posts"),
            service=SERVICE,
            auth=self.auth,
            json_body=body,
            timeout=self.timeout_seconds,
            transport=self.transport,
        )
        post_id = _read_id(payload)
        draft = DraftPost(post_id=post_id, edit_link=self.edit_link(post_id))
        log_event(self.logger, logging.INFO, "wp_draft_created", post_id=post_id, status=status)
        return draft

    async def upload_media(self, data: bytes, filename: str, mime_type: str) -> MediaUpload:
        payload = await request_json(
            "POST",
            self._api("/media"),
            service=SERVICE,
            auth=self.auth,
            headers={
                "Content-Type": mime_type,
                "Content-Disposition": f'attachment; filename="{filename}"',
            },
            content=data,
            timeout=self.timeout_seconds,
            transport=self.transport,
        )
        media_id = _read_id(payload)
        url = payload.get("source_url") or ""
        log_event(self.logger, logging.INFO, "wp_media_uploaded", media_id=media_id, filename=filename)
        return MediaUpload(media_id=media_id, url=url)


def _read_id(payload: Any) -> int:
    value = payload.get("id") if isinstance(payload, dict) else None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise IntegrationError("wordpress_missing_id", code="INVALID_RESPONSE", service=SERVICE)
    return value
