from __future__ import annotations

import html
import logging
import re

from bs4 import BeautifulSoup, Tag

from ..errors import EmptyContentError
from ..models import ContentBlock
from ..utils import log_event

BLOCK_TAGS = ("h1", "h2", "h3", "h4", "p", "li", "blockquote", "table")


def extract_blocks(
    raw_html: str,
    fallback_text: str | None = None,
    logger: logging.Logger | None = None,
) -> list[ContentBlock]:
    logger = logger or logging.getLogger("docpress.pipelines.blocks")
    blocks: list[ContentBlock] = []
    if raw_html and raw_html.strip():
        soup = BeautifulSoup(raw_html, "html.parser")
        for tag in soup(["script", "style", "head", "title"]):
            tag.decompose()
        for element in soup.find_all(list(BLOCK_TAGS)):
            if _has_block_ancestor(element):
                continue
            text = _visible_text(element)
            if not text:
                continue
            if element.name == "table":
                fragment = str(element)
            else:
                fragment = element.decode_contents().strip()
            blocks.append(
                ContentBlock(index=len(blocks), tag=element.name, html=fragment, text=text)
            )
    if blocks:
        log_event(logger, logging.INFO, "blocks_extracted", count=len(blocks))
        return blocks

    if fallback_text is None and raw_html:
        fallback_text = BeautifulSoup(raw_html, "html.parser").get_text("\n")
    blocks = split_text_blocks(fallback_text or "")
    if not blocks:
        raise EmptyContentError("document has no extractable content")
    log_event(logger, logging.WARNING, "blocks_fallback_text_split", count=len(blocks))
    return blocks


def split_text_blocks(text: str) -> list[ContentBlock]:
    blocks: list[ContentBlock] = []
    for chunk in re.split(r"\n\s*\n", text or ""):
        cleaned = chunk.strip()
        if not cleaned:
            continue
        blocks.append(
            ContentBlock(
                index=len(blocks),
                tag="p",
                html=html.escape(cleaned, quote=False),
                text=cleaned,
            )
        )
    return blocks


def blocks_to_html(blocks: list[ContentBlock]) -> str:
    """Re-emit blocks with their source tags; contiguous list items share one <ul>."""
    parts: list[str] = []
    inside_list = False
    for block in blocks:
        if inside_list and block.tag != "li":
            parts.append("</ul>")
            inside_list = False
        if block.tag == "li":
            if not inside_list:
                parts.append("<ul>")
                inside_list = True
            parts.append(f"<li>{block.html}</li>")
        elif block.is_table:
            parts.append(block.html)
        else:
            parts.append(f"<{block.tag}>{block.html}</{block.tag}>")
    if inside_list:
        parts.append("</ul>")
    return "\n".join(parts)


def text_to_paragraphs(text: str) -> str:
    lines = [line.strip() for line in (text or "").splitlines()]
    return "\n".join(f"<p>{html.escape(line, quote=False)}</p>" for line in lines if line)


def has_visible_text(fragment: str) -> bool:
    if not fragment or not fragment.strip():
        return False
    return bool(BeautifulSoup(fragment, "html.parser").get_text(strip=True))


def _has_block_ancestor(element: Tag) -> bool:
    for parent in element.parents:
        if parent.name in BLOCK_TAGS:
            return True
    return False


def _visible_text(element: Tag) -> str:
    return re.sub(r"\s+", " ", element.get_text(" ", strip=True)).strip()
