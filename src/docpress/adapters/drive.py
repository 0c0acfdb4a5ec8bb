from __future__ import annotations

import logging
from typing import Awaitable, Callable

import httpx

from ..httpclient import request_json, send
from ..models import SourceFile, SourceMetadata
from ..utils import log_event

API_BASE = "https://www.googleapis.com/drive/v3"
GOOGLE_APPS_PREFIX = "application/vnd.google-apps."
EXPORT_MIME = "text/html"

PROCESS_SUFFIX = "-process"
DONE_SUFFIX = "-done"
ERROR_SUFFIX = "-error"

SERVICE = "drive"

TokenProvider = Callable[[], Awaitable[str]]


def new_files_query(folder_id: str) -> str:
    clauses = [f"'{folder_id}' in parents", "trashed = false"]
    for suffix in (PROCESS_SUFFIX, DONE_SUFFIX, ERROR_SUFFIX):
        clauses.append(f"not name contains '{suffix}'")
    return " and ".join(clauses)


class DriveSource:
    """Google Drive folder used as the document inbox.

    File names carry the processing state: a claimed file is renamed with a
    ``-process`` suffix and later with ``-done`` or ``-error``.
    """

    def __init__(
        self,
        folder_id: str,
        token_provider: TokenProvider,
        *,
        timeout_seconds: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.folder_id = folder_id
        self.token_provider = token_provider
        self.timeout_seconds = timeout_seconds
        self.transport = transport
        self.logger = logger or logging.getLogger("docpress.adapters.drive")

    async def _headers(self) -> dict[str, str]:
        token = await self.token_provider()
        return {"Authorization": f"Bearer {token}"}

    async def list_new_files(self) -> list[SourceFile]:
        payload = await request_json(
            "GET",
            f"{API_BASE}/files",
            service=SERVICE,
            headers=await self._headers(),
            params={
                "q": new_files_query(self.folder_id),
                "fields": "files(id, name, modifiedTime, version)",
                "orderBy": "modifiedTime asc",
            },
            timeout=self.timeout_seconds,
            transport=self.transport,
        )
        files = [
            SourceFile(
                id=item["id"],
                name=item.get("name") or item["id"],
                revision=str(item.get("version") or "1"),
                modified_time=item.get("modifiedTime"),
            )
            for item in payload.get("files") or []
            if item.get("id")
        ]
        log_event(self.logger, logging.INFO, "drive_files_listed", count=len(files))
        return files

    async def rename(self, file_id: str, new_name: str) -> None:
        await send(
            "PATCH",
            f"{API_BASE}/files/{file_id}",
            service=SERVICE,
            headers=await self._headers(),
            json_body={"name": new_name},
            timeout=self.timeout_seconds,
            transport=self.transport,
        )
        log_event(self.logger, logging.INFO, "drive_file_renamed", file_id=file_id, name=new_name)

    async def claim(self, source: SourceFile) -> None:
        await self.rename(source.id, source.name + PROCESS_SUFFIX)

    async def mark_done(self, file_id: str, original_name: str) -> None:
        await self.rename(file_id, original_name + DONE_SUFFIX)

    async def mark_error(self, file_id: str, original_name: str) -> None:
        await self.rename(file_id, original_name + ERROR_SUFFIX)

    async def get_metadata(self, file_id: str) -> SourceMetadata:
        payload = await request_json(
            "GET",
            f"{API_BASE}/files/{file_id}",
            service=SERVICE,
            headers=await self._headers(),
            params={"fields": "mimeType, name"},
            timeout=self.timeout_seconds,
            transport=self.transport,
        )
        return SourceMetadata(
            name=payload.get("name") or "unknown",
            mime_type=payload.get("mimeType") or "application/octet-stream",
        )

    async def download(self, file_id: str, mime_type: str) -> bytes:
        if mime_type.startswith(GOOGLE_APPS_PREFIX):
            url = f"{API_BASE}/files/{file_id}/export"
            params = {"mimeType": EXPORT_MIME}
        else:
            url = f"{API_BASE}/files/{file_id}"
            params = {"alt": "media"}
        response = await send(
            "GET",
            url,
            service=SERVICE,
            headers=await self._headers(),
            params=params,
            timeout=self.timeout_seconds,
            transport=self.transport,
        )
        log_event(
            self.logger,
            logging.INFO,
            "drive_file_downloaded",
            file_id=file_id,
            bytes=len(response.content),
        )
        return response.content


def effective_mime_type(mime_type: str) -> str:
    """MIME type of the bytes returned by ``download`` for a Drive file."""
    if mime_type.startswith(GOOGLE_APPS_PREFIX):
        return EXPORT_MIME
    return mime_type
