"""Deterministic HTML assembly from classified blocks and images.

Block text is never regenerated: every paragraph, heading and list item is the
block's original inner HTML wrapped in a tag chosen from the structure. The
structure itself is untrusted, so the assembler guarantees that each block and
each image is rendered exactly once whatever the structure contains.
"""

from __future__ import annotations

import html
import logging
from typing import Awaitable, Callable

from ..models import BlockItem, ContentBlock, ImageAsset, ImageItem, StructureItem
from ..utils import log_event

CaptionFn = Callable[[str], Awaitable[str]]

RAW_BLOCK_OPEN = "<!-- wp:html -->"
RAW_BLOCK_CLOSE = "<!-- /wp:html -->"

DEFAULT_CAPTION = "Illustration"

FIGURE_STYLE = "max-width: 600px; margin: 20px auto;"
IMAGE_STYLE = "max-width: 100%; height: auto;"
CAPTION_STYLE = "text-align: center; font-style: italic; font-size: 0.9em; color: #555;"


def wrap_raw_html(fragment: str) -> str:
    return f"{RAW_BLOCK_OPEN}\n{fragment}\n{RAW_BLOCK_CLOSE}"


def render_figure(image: ImageAsset, caption: str) -> str:
    src = html.escape(image.url, quote=True)
    alt = html.escape(caption, quote=True)
    text = html.escape(caption, quote=False)
    return (
        f'<figure class="wp-block-image aligncenter size-large" style="{FIGURE_STYLE}">\n'
        f'<img src="{src}" alt="{alt}" style="{IMAGE_STYLE}" />\n'
        f'<figcaption style="{CAPTION_STYLE}">{text}</figcaption>\n'
        "</figure>"
    )


def source_bound_type(block: ContentBlock) -> str | None:
    """Type a block keeps whatever the classifier says, or None when free."""
    if block.is_table:
        return "table"
    if block.tag == "blockquote":
        return "blockquote"
    return None


def render_block(block: ContentBlock, block_type: str) -> str:
    if block.is_table:
        return wrap_raw_html(block.html)
    if block.tag == "blockquote":
        return f"<blockquote>{block.html}</blockquote>"
    if block_type == "li":
        return f"<li>{block.html}</li>"
    if block_type not in ("p", "h2", "h3"):
        block_type = "p"
    return f"<{block_type}>{block.html}</{block_type}>"


async def assemble_html(
    blocks: list[ContentBlock],
    structure: list[StructureItem],
    images: list[ImageAsset] | None = None,
    caption_fn: CaptionFn | None = None,
    *,
    fallback_caption: str = DEFAULT_CAPTION,
    logger: logging.Logger | None = None,
) -> str:
    logger = logger or logging.getLogger("docpress.pipelines.assemble")
    images = images or []
    parts: list[str] = []
    used_blocks: set[int] = set()
    used_images: set[int] = set()
    inside_list = False

    async def caption_for(image: ImageAsset, image_number: int) -> str:
        if caption_fn is None:
            return image.alt or fallback_caption
        try:
            caption = (await caption_fn(image.prompt)).strip()
        except Exception as exc:  # noqa: BLE001
            log_event(
                logger,
                logging.WARNING,
                "caption_failed",
                image_index=image_number,
                error=str(exc),
            )
            return fallback_caption
        return caption or fallback_caption

    for position, item in enumerate(structure):
        if isinstance(item, ImageItem):
            number = item.image_index
            if number < 1 or number > len(images):
                log_event(logger, logging.WARNING, "image_index_out_of_range", position=position, image_index=number)
                continue
            if number in used_images:
                log_event(logger, logging.WARNING, "image_index_duplicate", position=position, image_index=number)
                continue
            if inside_list:
                parts.append("</ul>")
                inside_list = False
            image = images[number - 1]
            used_images.add(number)
            parts.append(render_figure(image, await caption_for(image, number)))
            continue

        if not isinstance(item, BlockItem):
            log_event(logger, logging.WARNING, "structure_item_unknown", position=position)
            continue
        index = item.block_index
        if index < 0 or index >= len(blocks):
            log_event(logger, logging.WARNING, "block_index_out_of_range", position=position, block_index=index)
            continue
        if index in used_blocks:
            log_event(logger, logging.WARNING, "block_index_duplicate", position=position, block_index=index)
            continue
        block = blocks[index]
        block_type = item.type
        bound = source_bound_type(block)
        if block_type != bound and (bound is not None or block_type == "table"):
            log_event(
                logger,
                logging.WARNING,
                "block_type_mismatch",
                block_index=index,
                classified=block_type,
                source_tag=block.tag,
            )
            block_type = bound or "p"
        is_list_item = block_type == "li"
        if inside_list and not is_list_item:
            parts.append("</ul>")
            inside_list = False
        if is_list_item and not inside_list:
            parts.append("<ul>")
            inside_list = True
        used_blocks.add(index)
        parts.append(render_block(block, block_type))

    if inside_list:
        parts.append("</ul>")

    for index, block in enumerate(blocks):
        if index in used_blocks:
            continue
        log_event(logger, logging.WARNING, "block_unplaced_appended", block_index=index)
        parts.append(render_block(block, source_bound_type(block) or "p"))

    for number, image in enumerate(images, start=1):
        if number in used_images:
            continue
        log_event(logger, logging.WARNING, "image_unplaced_appended", image_index=number)
        parts.append(render_figure(image, await caption_for(image, number)))

    log_event(
        logger,
        logging.INFO,
        "html_assembled",
        blocks=len(blocks),
        placed_blocks=len(used_blocks),
        images=len(images),
        placed_images=len(used_images),
    )
    return "\n".join(parts).strip()
