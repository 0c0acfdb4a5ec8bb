from __future__ import annotations

import copy
import json
import logging

import pytest

from docpress.config import DEFAULT_CONFIG, build_config
from docpress.errors import IntegrationError
from docpress.models import DraftPost, MediaUpload, SourceFile, SourceMetadata, WidgetCatalog
from docpress.storage import init_db
from docpress.worker import PipelineContext

ARTICLE_HTML = "".join(
    f"<p>Paragraph {word} talks about gardening tools, soil and seasonal planting in detail.</p>"
    for word in ("one", "two", "three", "four", "five")
)


class FakeSource:
    def __init__(self, files, content=ARTICLE_HTML.encode("utf-8"), mime_type="text/html"):
        self.files = list(files)
        self.content = content
        self.mime_type = mime_type
        self.fail_download: set[str] = set()
        self.fail_mark_done = False
        self.fail_mark_error = False
        self.claimed: list[str] = []
        self.done: list[tuple[str, str]] = []
        self.errors: list[tuple[str, str]] = []

    async def list_new_files(self):
        return list(self.files)

    async def claim(self, source):
        self.claimed.append(source.id)

    async def get_metadata(self, file_id):
        return SourceMetadata(name=f"{file_id}.docx", mime_type=self.mime_type)

    async def download(self, file_id, mime_type):
        if file_id in self.fail_download:
            raise IntegrationError("download failed", code="HTTP_500", service="drive")
        return self.content

    async def mark_done(self, file_id, original_name):
        if self.fail_mark_done:
            raise IntegrationError("rename failed", code="HTTP_500", service="drive")
        self.done.append((file_id, original_name))

    async def mark_error(self, file_id, original_name):
        if self.fail_mark_error:
            raise IntegrationError("rename failed", code="HTTP_500", service="drive")
        self.errors.append((file_id, original_name))


class FakePublisher:
    def __init__(self):
        self.drafts: list[dict] = []
        self.uploads: list[str] = []
        self.fail_publish = False

    async def create_draft(self, title, content, *, status="draft", featured_media=None):
        if self.fail_publish:
            raise IntegrationError("wordpress down", code="HTTP_502", service="wordpress")
        post_id = 100 + len(self.drafts) + 1
        self.drafts.append(
            {"title": title, "content": content, "status": status, "featured_media": featured_media}
        )
        return DraftPost(
            post_id=post_id,
            edit_link=f"https://blog.example.com/wp-admin/post.php?post={post_id}&action=edit",
        )

    async def upload_media(self, data, filename, mime_type):
        self.uploads.append(filename)
        number = len(self.uploads)
        return MediaUpload(media_id=500 + number, url=f"https://blog.example.com/media/{number}.png")


class FakeLlm:
    def __init__(self):
        self.structure: object = {"structure": []}
        self.tags = ["gardening", "tools"]
        self.prompts = ["A garden at dawn", "Rusty tools on a bench"]
        self.fail_classify = False
        self.fail_prompts = False
        self.classify_calls: list[tuple[list, int]] = []

    async def classify_structure(self, previews, image_count):
        self.classify_calls.append((previews, image_count))
        if self.fail_classify:
            raise IntegrationError("llm timeout", code="TIMEOUT", service="llm")
        return json.dumps(self.structure)

    async def generate_short_caption(self, prompt, language="English"):
        return f"Caption for {prompt}"

    async def extract_article_tags(self, text, max_tags=10):
        return list(self.tags)

    async def generate_image_prompts(self, text, count=3):
        if self.fail_prompts:
            raise IntegrationError("llm down", code="HTTP_500", service="llm")
        return self.prompts[:count]


class FakeImages:
    def __init__(self):
        self.fail_prompts: set[str] = set()

    async def generate(self, prompt):
        if prompt in self.fail_prompts:
            raise IntegrationError("quota", code="HTTP_429", service="imagen")
        return b"\x89PNG fake"


def runtime_config(**sections):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["wordpress"]["site_url"] = "https://blog.example.com"
    cfg["drive"]["folder_id"] = "folder-1"
    cfg["jobs"]["pause_between_jobs_seconds"] = 0
    for section, values in sections.items():
        cfg[section].update(values)
    return cfg


@pytest.fixture
def make_context(tmp_path):
    def _make(files=None, catalog=None, with_images=True, **sections):
        conn = init_db(str(tmp_path / "state.sqlite3"))
        if files is None:
            files = [SourceFile(id="file-1", name="Garden Guide.docx", revision="7")]
        return PipelineContext(
            conn=conn,
            config=build_config(runtime_config(**sections)),
            source=FakeSource(files),
            publisher=FakePublisher(),
            llm=FakeLlm(),
            widgets=catalog or WidgetCatalog(),
            image_generator=FakeImages() if with_images else None,
            logger=logging.getLogger("docpress.worker"),
        )

    return _make
