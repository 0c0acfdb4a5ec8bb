from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import yaml

from .errors import ConfigError
from .models import Widget, WidgetCatalog
from .storage import get_setting, set_setting
from .utils import log_event

WIDGET_POSITIONS = ("top", "bottom")


@dataclass(frozen=True)
class PathsConfig:
    widgets_file: str


@dataclass(frozen=True)
class DriveConfig:
    folder_id: str
    timeout_seconds: int


@dataclass(frozen=True)
class WordPressConfig:
    site_url: str
    post_status: str
    timeout_seconds: int

    @property
    def domain(self) -> str | None:
        if not self.site_url:
            return None
        host = urlsplit(self.site_url).hostname
        return host.lower() if host else None


@dataclass(frozen=True)
class LlmConfig:
    base_url: str
    model: str
    temperature: float
    timeout_seconds: int
    preview_chars: int
    caption_language: str
    caption_fallback: str
    max_tag_count: int


@dataclass(frozen=True)
class ImagesConfig:
    enabled: bool
    count: int
    min_text_chars: int
    vertex_project: str
    vertex_location: str
    model: str
    aspect_ratio: str


@dataclass(frozen=True)
class WidgetsConfig:
    enabled: bool
    top_min_blocks: int
    top_insert_after: int
    universal_bottom_widget_id: str


@dataclass(frozen=True)
class JobsConfig:
    pause_between_jobs_seconds: float
    stuck_after_minutes: int


@dataclass(frozen=True)
class Config:
    paths: PathsConfig
    drive: DriveConfig
    wordpress: WordPressConfig
    llm: LlmConfig
    images: ImagesConfig
    widgets: WidgetsConfig
    jobs: JobsConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "widgets_file": "/config/widgets.yml",
    },
    "drive": {
        "folder_id": "",
        "timeout_seconds": 60,
    },
    "wordpress": {
        "site_url": "",
        "post_status": "draft",
        "timeout_seconds": 60,
    },
    "llm": {
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-4o-mini",
        "temperature": 0.7,
        "timeout_seconds": 60,
        "preview_chars": 150,
        "caption_language": "English",
        "caption_fallback": "Illustration",
        "max_tag_count": 10,
    },
    "images": {
        "enabled": True,
        "count": 2,
        "min_text_chars": 100,
        "vertex_project": "",
        "vertex_location": "us-central1",
        "model": "imagen-3.0-generate-002",
        "aspect_ratio": "16:9",
    },
    "widgets": {
        "enabled": True,
        "top_min_blocks": 3,
        "top_insert_after": 3,
        "universal_bottom_widget_id": "universal-cta-bottom",
    },
    "jobs": {
        "pause_between_jobs_seconds": 2.0,
        "stuck_after_minutes": 30,
    },
}

CONFIG_KEY = "config.runtime"
DEFAULT_DATA_DIR = "/data"


def get_state_db_path() -> str:
    data_dir = os.environ.get("DP_DATA_DIR", DEFAULT_DATA_DIR)
    return os.path.join(data_dir, "state.sqlite3")


def get_secret(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def require_secret(name: str) -> str:
    value = get_secret(name)
    if not value:
        raise ConfigError(f"{name} is not set")
    return value


def bootstrap_runtime_config(conn) -> dict[str, Any]:
    cfg = get_setting(conn, CONFIG_KEY, None)
    if cfg is None:
        set_setting(conn, CONFIG_KEY, _deep_copy(DEFAULT_CONFIG))
        cfg = get_setting(conn, CONFIG_KEY, None)
    if not isinstance(cfg, dict):
        raise ConfigError("config.runtime must be a JSON object")
    return cfg


def get_runtime_config(conn) -> dict[str, Any]:
    cfg = bootstrap_runtime_config(conn)
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    return cfg


def set_runtime_config(conn, cfg: dict[str, Any]) -> None:
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    set_setting(conn, CONFIG_KEY, _deep_copy(cfg))


def load_runtime_config(conn) -> Config:
    cfg = get_runtime_config(conn)
    return build_config(cfg)


def validate_runtime_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config.runtime", errors)
    if not errors:
        position_after = cfg["widgets"]["top_insert_after"]
        if position_after < 1:
            errors.append("config.runtime.widgets.top_insert_after must be >= 1")
        count = cfg["images"]["count"]
        if count < 0 or count > 5:
            errors.append("config.runtime.images.count must be between 0 and 5")
        if cfg["llm"]["preview_chars"] < 1:
            errors.append("config.runtime.llm.preview_chars must be >= 1")
    return errors


def _validate_dict(value: dict[str, Any], schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema.keys():
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value.keys():
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key not in value:
            continue
        _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        if not isinstance(value, dict):
            errors.append(f"{path} must be an object")
            return
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{path} must be an integer")
        return
    if isinstance(default, float):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            errors.append(f"{path} must be a number")
        return
    if isinstance(default, str):
        if not isinstance(value, str):
            errors.append(f"{path} must be a string")
        return


def build_config(cfg: dict[str, Any]) -> Config:
    paths_cfg = cfg.get("paths") or {}
    drive_cfg = cfg.get("drive") or {}
    wp_cfg = cfg.get("wordpress") or {}
    llm_cfg = cfg.get("llm") or {}
    images_cfg = cfg.get("images") or {}
    widgets_cfg = cfg.get("widgets") or {}
    jobs_cfg = cfg.get("jobs") or {}

    return Config(
        paths=PathsConfig(
            widgets_file=str(paths_cfg.get("widgets_file")),
        ),
        drive=DriveConfig(
            folder_id=str(drive_cfg.get("folder_id")),
            timeout_seconds=int(drive_cfg.get("timeout_seconds")),
        ),
        wordpress=WordPressConfig(
            site_url=str(wp_cfg.get("site_url")).rstrip("/"),
            post_status=str(wp_cfg.get("post_status")),
            timeout_seconds=int(wp_cfg.get("timeout_seconds")),
        ),
        llm=LlmConfig(
            base_url=str(llm_cfg.get("base_url")),
            model=str(llm_cfg.get("model")),
            temperature=float(llm_cfg.get("temperature")),
            timeout_seconds=int(llm_cfg.get("timeout_seconds")),
            preview_chars=int(llm_cfg.get("preview_chars")),
            caption_language=str(llm_cfg.get("caption_language")),
            caption_fallback=str(llm_cfg.get("caption_fallback")),
            max_tag_count=int(llm_cfg.get("max_tag_count")),
        ),
        images=ImagesConfig(
            enabled=bool(images_cfg.get("enabled")),
            count=int(images_cfg.get("count")),
            min_text_chars=int(images_cfg.get("min_text_chars")),
            vertex_project=str(images_cfg.get("vertex_project")),
            vertex_location=str(images_cfg.get("vertex_location")),
            model=str(images_cfg.get("model")),
            aspect_ratio=str(images_cfg.get("aspect_ratio")),
        ),
        widgets=WidgetsConfig(
            enabled=bool(widgets_cfg.get("enabled")),
            top_min_blocks=int(widgets_cfg.get("top_min_blocks")),
            top_insert_after=int(widgets_cfg.get("top_insert_after")),
            universal_bottom_widget_id=str(widgets_cfg.get("universal_bottom_widget_id")),
        ),
        jobs=JobsConfig(
            pause_between_jobs_seconds=float(jobs_cfg.get("pause_between_jobs_seconds")),
            stuck_after_minutes=int(jobs_cfg.get("stuck_after_minutes")),
        ),
    )


def load_widget_catalog(
    path: str,
    universal_bottom_widget_id: str | None = None,
    logger: logging.Logger | None = None,
) -> WidgetCatalog:
    logger = logger or logging.getLogger("docpress.config")
    if not path or not os.path.exists(path):
        log_event(logger, logging.WARNING, "widget_catalog_missing", path=path)
        return WidgetCatalog(widgets=(), universal_bottom_widget_id=universal_bottom_widget_id)
    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or []
        except yaml.YAMLError as exc:
            raise ConfigError(f"widget catalog {path} is not valid YAML: {exc}") from exc
    catalog = parse_widget_catalog(data, universal_bottom_widget_id)
    log_event(logger, logging.INFO, "widget_catalog_loaded", path=path, count=len(catalog.widgets))
    return catalog


def parse_widget_catalog(
    data: Any, universal_bottom_widget_id: str | None = None
) -> WidgetCatalog:
    if isinstance(data, dict):
        data = data.get("widgets") or []
    if not isinstance(data, list):
        raise ConfigError("widget catalog must be a list of widgets")
    widgets: list[Widget] = []
    seen: set[str] = set()
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            raise ConfigError(f"widgets[{idx}] must be an object")
        widget_id = str(item.get("id") or "").strip()
        if not widget_id:
            raise ConfigError(f"widgets[{idx}].id is required")
        if widget_id in seen:
            raise ConfigError(f"duplicate widget id {widget_id}")
        position = str(item.get("position") or "").strip().lower()
        if position not in WIDGET_POSITIONS:
            raise ConfigError(f"widgets[{idx}].position must be one of {', '.join(WIDGET_POSITIONS)}")
        embed_html = item.get("embed_html")
        if not isinstance(embed_html, str) or not embed_html.strip():
            raise ConfigError(f"widgets[{idx}].embed_html is required")
        tags = item.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise ConfigError(f"widgets[{idx}].tags must be a list of strings")
        seen.add(widget_id)
        widgets.append(
            Widget(
                id=widget_id,
                title=str(item.get("title") or widget_id),
                position=position,
                tags=tuple(tag.strip() for tag in tags if tag.strip()),
                embed_html=embed_html.strip(),
            )
        )
    return WidgetCatalog(
        widgets=tuple(widgets),
        universal_bottom_widget_id=universal_bottom_widget_id or None,
    )


def _deep_copy(value: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(value))
