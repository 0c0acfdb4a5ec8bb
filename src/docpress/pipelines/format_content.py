from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from ..models import ContentBlock, ImageAsset
from ..utils import log_event
from .assemble import DEFAULT_CAPTION, CaptionFn, assemble_html
from .structure import build_previews, parse_structure

ClassifierFn = Callable[[list[dict[str, object]], int], Awaitable[Any]]


async def format_article_html(
    blocks: list[ContentBlock],
    images: list[ImageAsset],
    classifier: ClassifierFn,
    caption_fn: CaptionFn | None = None,
    *,
    preview_chars: int = 150,
    fallback_caption: str = DEFAULT_CAPTION,
    logger: logging.Logger | None = None,
) -> str:
    """Classify blocks with one classifier request and assemble the final HTML.

    Classifier transport errors propagate so the caller can apply its own
    fallback; a malformed response degrades to the identity structure.
    """
    logger = logger or logging.getLogger("docpress.pipelines.format_content")
    if not blocks:
        raise ValueError("no blocks to format")
    previews = build_previews(blocks, preview_chars)
    log_event(
        logger,
        logging.INFO,
        "structure_requested",
        blocks=len(blocks),
        images=len(images),
    )
    payload = await classifier(previews, len(images))
    structure = parse_structure(payload, len(blocks), logger=logger)
    return await assemble_html(
        blocks,
        structure,
        images,
        caption_fn,
        fallback_caption=fallback_caption,
        logger=logger,
    )
