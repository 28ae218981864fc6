"""
Loading and validation of harvest settings.

Settings are described with Pydantic; a YAML or JSON file may supply them
and command-line options override individual fields. Every invalid value,
including a regular expression that does not compile, is rejected here,
before any request is made.
"""
from __future__ import annotations

import errno
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from spaider import __version__
from spaider.policy import DEFAULT_EXTENSIONS


class HarvestConfig(BaseModel):
    """Configuration of one harvest run."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    start_url: str = Field(..., description="URL the crawl starts from.")
    allow: List[str] = Field(default_factory=list, description="Regexes a link must match; default is the start URL subtree.")
    deny: List[str] = Field(default_factory=list, description="Regexes that reject a link outright.")
    extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS), description="Permitted path extensions; \"\" means none.")
    max_depth: Optional[int] = Field(None, ge=0, description="Maximum link depth; unbounded when unset.")
    synchronous: bool = Field(False, description="Fetch one page at a time for reproducible output.")
    verbose: bool = Field(False, description="Echo every requested URL to the log.")
    concurrency: int = Field(8, ge=1, description="Number of parallel fetch workers.")
    user_agent: str = Field(f"spaider/{__version__}", min_length=1, description="User-Agent header.")
    max_body_size: int = Field(1 << 19, gt=0, description="Bytes read per response body.")
    timeout: float = Field(10.0, gt=0, description="Per-request timeout (seconds).")
    retry_times: int = Field(2, ge=0, description="Retries on 5xx and 429.")
    retry_backoff: float = Field(1.0, ge=0, description="Base delay of the exponential backoff (seconds).")

    @field_validator("start_url")
    def _check_start_url(cls, v: str) -> str:
        v = v.strip()
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"start URL must be an absolute http(s) URL, got {v!r}")
        return v

    @field_validator("allow", "deny")
    def _check_patterns(cls, patterns: List[str]) -> List[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid regular expression {pattern!r}: {exc}") from exc
        return patterns

    @field_validator("extensions")
    def _normalize_extensions(cls, exts: List[str]) -> List[str]:
        normalized: List[str] = []
        for ext in exts:
            ext = ext.strip().lower()
            if ext and not ext.startswith("."):
                ext = "." + ext
            if ext not in normalized:
                normalized.append(ext)
        if not normalized:
            raise ValueError("at least one extension must be permitted")
        return normalized


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Malformed YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of YAML must be a mapping, got {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Malformed JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of JSON must be a mapping, got {type(data).__name__}")
    return data


def read_config_file(path: Union[str, Path]) -> dict[str, Any]:
    """Read a YAML or JSON settings file into a plain mapping."""
    path_obj = Path(path).expanduser().resolve()
    if not path_obj.is_file():
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _read_yaml(path_obj)
    if suffix == ".json":
        return _read_json(path_obj)
    raise ValueError(f"Unsupported config format: {suffix}")


def load_config(path: Union[str, Path]) -> HarvestConfig:
    """Read YAML or JSON and return a validated :class:`HarvestConfig`."""
    return HarvestConfig(**read_config_file(path))


def build_config(path: Union[str, Path, None] = None, **overrides: Any) -> HarvestConfig:
    """Merge an optional settings file with explicit overrides.

    Overrides whose value is None (or an empty tuple/list, as click passes
    for unused multiple options) leave the file value in place.
    """
    data: Dict[str, Any] = read_config_file(path) if path is not None else {}
    for key, value in overrides.items():
        if value is None or (isinstance(value, (list, tuple)) and not value):
            continue
        data[key] = list(value) if isinstance(value, tuple) else value
    return HarvestConfig(**data)


__all__ = ["HarvestConfig", "build_config", "load_config", "read_config_file"]
