from __future__ import annotations

import json
import logging
from typing import Any

import jsonschema

from ..models import BlockItem, ContentBlock, ImageItem, StructureItem
from ..utils import log_event

BLOCK_TYPES = ("p", "h2", "h3", "li", "table")
ITEM_TYPES = BLOCK_TYPES + ("image",)

STRUCTURE_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["structure"],
    "properties": {
        "structure": {
            "type": "array",
            "items": {"type": "object"},
        }
    },
}

ITEM_SCHEMA: dict[str, Any] = {
    "oneOf": [
        {
            "type": "object",
            "required": ["type", "blockIndex"],
            "properties": {
                "type": {"enum": list(BLOCK_TYPES)},
                "blockIndex": {"type": "integer"},
            },
        },
        {
            "type": "object",
            "required": ["type", "imageIndex"],
            "properties": {
                "type": {"const": "image"},
                "imageIndex": {"type": "integer"},
            },
        },
    ]
}


def build_previews(blocks: list[ContentBlock], preview_chars: int) -> list[dict[str, object]]:
    previews = []
    for block in blocks:
        text = block.text
        if len(text) > preview_chars:
            text = text[:preview_chars].rstrip() + "..."
        previews.append({"index": block.index, "tag": block.tag, "preview": text})
    return previews


def identity_structure(block_count: int) -> list[StructureItem]:
    return [BlockItem(type="p", block_index=index) for index in range(block_count)]


def parse_structure(
    payload: Any,
    block_count: int,
    logger: logging.Logger | None = None,
) -> list[StructureItem]:
    """Turn an untrusted classifier payload into structure items.

    Only the shape is checked here. A payload that is not an object with a
    ``structure`` array yields the identity structure; individual malformed
    items are dropped. Index coverage is enforced later by the assembler.
    """
    logger = logger or logging.getLogger("docpress.pipelines.structure")
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError):
            log_event(logger, logging.WARNING, "structure_unparseable", fallback="identity")
            return identity_structure(block_count)
    try:
        jsonschema.validate(payload, STRUCTURE_RESPONSE_SCHEMA)
    except jsonschema.ValidationError as exc:
        log_event(
            logger,
            logging.WARNING,
            "structure_malformed",
            fallback="identity",
            error=exc.message,
        )
        return identity_structure(block_count)

    items: list[StructureItem] = []
    for position, raw in enumerate(payload["structure"]):
        item = _coerce_item(raw)
        if item is None:
            log_event(
                logger,
                logging.WARNING,
                "structure_item_invalid",
                position=position,
                item=json.dumps(raw, ensure_ascii=False)[:200],
            )
            continue
        items.append(item)
    return items


def _coerce_item(raw: Any) -> StructureItem | None:
    try:
        jsonschema.validate(raw, ITEM_SCHEMA)
    except jsonschema.ValidationError:
        return None
    if isinstance(raw.get("blockIndex"), bool) or isinstance(raw.get("imageIndex"), bool):
        return None
    if raw["type"] == "image":
        return ImageItem(image_index=int(raw["imageIndex"]))
    return BlockItem(type=raw["type"], block_index=int(raw["blockIndex"]))
