from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
import sys
import unicodedata
from datetime import date, datetime, timezone, timedelta
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log ``event=<name> key=value ...`` on one line."""
    parts = [f"event={event}"]
    parts.extend(f"{key}={value}" for key, value in fields.items())
    logger.log(level, " ".join(parts))


def configure_logging(logger_name: str, default_level: str = "INFO") -> logging.Logger:
    """Set up root handlers once and return the named logger.

    Environment: ``DP_LOG_LEVEL`` (root level), ``DP_LOG_FILE`` (extra file
    handler) and ``DP_LOG_LEVELS`` (``name=LEVEL`` pairs, comma separated).
    """
    level = _level(os.environ.get("DP_LOG_LEVEL", default_level))
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    if not any(_is_stdout_handler(handler) for handler in root.handlers):
        root.addHandler(_make_handler(logging.StreamHandler(sys.stdout), level))
    log_path = os.environ.get("DP_LOG_FILE")
    if log_path and not any(_writes_to(handler, log_path) for handler in root.handlers):
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
        root.addHandler(_make_handler(logging.FileHandler(log_path), level))
    for name, override in _parse_overrides(os.environ.get("DP_LOG_LEVELS", "")):
        logging.getLogger(name).setLevel(_level(override))
    return logging.getLogger(logger_name)


def _level(name: str) -> int:
    return getattr(logging, name.strip().upper(), logging.INFO)


def _make_handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _is_stdout_handler(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and handler.stream is sys.stdout


def _writes_to(handler: logging.Handler, path: str) -> bool:
    return isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(path)


def _parse_overrides(raw: str) -> list[tuple[str, str]]:
    pairs = []
    for item in raw.split(","):
        if "=" not in item:
            continue
        name, level = item.split("=", 1)
        if name.strip():
            pairs.append((name.strip(), level))
    return pairs


def json_dumps(value: Any) -> str:
    return json.dumps(value, default=_json_default, sort_keys=True, ensure_ascii=False)


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value):
        return dataclasses.asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Path, UUID)):
        return str(value)
    if isinstance(value, (set, tuple)):
        return list(value)
    return str(value)


def slugify(text: str, max_length: int = 80) -> str:
    folded = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", folded).strip("-").lower()
    return cleaned[:max_length].strip("-") or "untitled"


_DOC_EXTENSIONS = (".docx", ".doc", ".html", ".htm", ".txt")
_STATE_SUFFIXES = ("-process", "-done", "-error")


def title_from_filename(name: str) -> str:
    """Post title from a source file name, without extension or state suffix."""
    title = (name or "").strip()
    for suffix in _STATE_SUFFIXES:
        if title.endswith(suffix):
            title = title[: -len(suffix)]
    lowered = title.lower()
    for ext in _DOC_EXTENSIONS:
        if lowered.endswith(ext):
            title = title[: -len(ext)]
            break
    title = re.sub(r"[_\s]+", " ", title).strip()
    return title or "Untitled"


def truncate_words(text: str, word_limit: int) -> str:
    words = text.split()
    if len(words) <= word_limit:
        return text
    return " ".join(words[:word_limit])


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def utc_now_iso_offset(*, seconds: int) -> str:
    return (datetime.now(tz=timezone.utc) + timedelta(seconds=seconds)).isoformat()
