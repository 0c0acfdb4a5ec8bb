import asyncio

import pytest

from docpress.errors import IntegrationError
from docpress.models import ContentBlock, ImageAsset
from docpress.pipelines.format_content import format_article_html

BLOCKS = [
    ContentBlock(index=0, tag="p", html="Soil basics", text="Soil basics"),
    ContentBlock(index=1, tag="p", html="Test your <em>pH</em> first", text="Test your pH first"),
    ContentBlock(index=2, tag="p", html="Add compost", text="Add compost"),
]


def test_format_uses_classifier_structure():
    calls = []

    async def classifier(previews, image_count):
        calls.append((previews, image_count))
        return '{"structure": [{"type": "h2", "blockIndex": 0}, {"type": "image", "imageIndex": 1}, {"type": "li", "blockIndex": 1}, {"type": "li", "blockIndex": 2}]}'

    image = ImageAsset(url="https://cdn.example.com/1.png", alt="", external_media_id=3, prompt="soil")

    html = asyncio.run(format_article_html(BLOCKS, [image], classifier, preview_chars=5))

    assert html.startswith("<h2>Soil basics</h2>\n<figure")
    assert "<ul>\n<li>Test your <em>pH</em> first</li>\n<li>Add compost</li>\n</ul>" in html
    previews, image_count = calls[0]
    assert image_count == 1
    assert previews[1] == {"index": 1, "tag": "p", "preview": "Test..."}


def test_format_malformed_response_keeps_source_order():
    async def classifier(previews, image_count):
        return "I cannot do that"

    html = asyncio.run(format_article_html(BLOCKS, [], classifier))

    assert html == "<p>Soil basics</p>\n<p>Test your <em>pH</em> first</p>\n<p>Add compost</p>"


def test_format_propagates_classifier_errors():
    async def classifier(previews, image_count):
        raise IntegrationError("timeout", code="TIMEOUT", service="llm")

    with pytest.raises(IntegrationError):
        asyncio.run(format_article_html(BLOCKS, [], classifier))
