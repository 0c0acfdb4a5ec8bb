from __future__ import annotations

from typing import Protocol

from ..models import DraftPost, MediaUpload, SourceFile, SourceMetadata


class SourceStore(Protocol):
    async def list_new_files(self) -> list[SourceFile]: ...

    async def claim(self, source: SourceFile) -> None: ...

    async def get_metadata(self, file_id: str) -> SourceMetadata: ...

    async def download(self, file_id: str, mime_type: str) -> bytes: ...

    async def mark_done(self, file_id: str, original_name: str) -> None: ...

    async def mark_error(self, file_id: str, original_name: str) -> None: ...


class Publisher(Protocol):
    async def create_draft(
        self,
        title: str,
        content: str,
        *,
        status: str = "draft",
        featured_media: int | None = None,
    ) -> DraftPost: ...

    async def upload_media(self, data: bytes, filename: str, mime_type: str) -> MediaUpload: ...


class ImageGenerator(Protocol):
    async def generate(self, prompt: str) -> bytes: ...
