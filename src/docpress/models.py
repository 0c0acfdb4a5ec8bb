from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class JobStatus(str, Enum):
    NEW = "NEW"
    CLAIMED = "CLAIMED"
    IMAGES_PICKED = "IMAGES_PICKED"
    POST_RENDERED = "POST_RENDERED"
    WP_DRAFTED = "WP_DRAFTED"
    DONE = "DONE"
    ERROR = "ERROR"


class ArtifactKind(str, Enum):
    RAW_CONTENT = "RAW_CONTENT"
    IMAGE_META = "IMAGE_META"
    HTML = "HTML"
    WIDGET_DECISION = "WIDGET_DECISION"


@dataclass(frozen=True)
class Job:
    id: str
    source_file_id: str
    source_revision_id: str
    source_name: str | None
    status: JobStatus
    error_code: str | None
    error_message: str | None
    started_at: str
    finished_at: str | None
    published_post_id: int | None
    published_post_edit_link: str | None


@dataclass(frozen=True)
class Artifact:
    id: str
    job_id: str
    kind: str
    content: dict[str, object]
    created_at: str


@dataclass(frozen=True)
class SourceFile:
    id: str
    name: str
    revision: str
    modified_time: str | None = None


@dataclass(frozen=True)
class ParsedDocument:
    text: str
    html: str
    word_count: int


@dataclass(frozen=True)
class ContentBlock:
    index: int
    tag: str
    html: str
    text: str

    @property
    def is_table(self) -> bool:
        return self.tag == "table"


@dataclass(frozen=True)
class BlockItem:
    type: str
    block_index: int


@dataclass(frozen=True)
class ImageItem:
    image_index: int
    type: str = "image"


StructureItem = Union[BlockItem, ImageItem]


@dataclass(frozen=True)
class ImageAsset:
    url: str
    alt: str
    external_media_id: int | None
    prompt: str


@dataclass(frozen=True)
class Widget:
    id: str
    title: str
    position: str
    tags: tuple[str, ...]
    embed_html: str


@dataclass(frozen=True)
class WidgetCatalog:
    widgets: tuple[Widget, ...] = ()
    universal_bottom_widget_id: str | None = None

    def for_position(self, position: str) -> list[Widget]:
        return [widget for widget in self.widgets if widget.position == position]

    def get(self, widget_id: str) -> Widget | None:
        for widget in self.widgets:
            if widget.id == widget_id:
                return widget
        return None


@dataclass(frozen=True)
class WidgetDecision:
    top_widget_id: str | None = None
    bottom_widget_id: str | None = None
    article_tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DraftPost:
    post_id: int
    edit_link: str


@dataclass(frozen=True)
class MediaUpload:
    media_id: int
    url: str


@dataclass(frozen=True)
class SourceMetadata:
    name: str
    mime_type: str
