from __future__ import annotations

import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .gap_expansion import DEFAULT_EXPAND_STEP

VIEW_MODES = {"unified", "split"}
DEFAULT_FETCH_CONCURRENCY = 3
DEFAULT_STATE_DIR = ".diffreview"


@dataclass(frozen=True)
class ReviewConfig:
    expand_step: int = DEFAULT_EXPAND_STEP
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    view_mode: str = "unified"
    state_dir: Path = Path(DEFAULT_STATE_DIR)
    highlight: bool = True
    author: str = "You"

    def with_overrides(self, **overrides: Any) -> ReviewConfig:
        values = {key: value for key, value in overrides.items() if value is not None}
        return _validated(replace(self, **values))


def _positive_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise RuntimeError(f"config `{key}` must be an integer")
    return value


def _validated(config: ReviewConfig) -> ReviewConfig:
    if config.expand_step < 1:
        raise RuntimeError("config `expand_step` must be >= 1")
    if config.fetch_concurrency < 1:
        raise RuntimeError("config `fetch_concurrency` must be >= 1")
    if config.view_mode not in VIEW_MODES:
        raise RuntimeError("config `view_mode` must be 'unified' or 'split'")
    return config


def config_from_mapping(data: dict[str, Any], base_dir: Path | None = None) -> ReviewConfig:
    section = data.get("review", data)
    if not isinstance(section, dict):
        raise RuntimeError("config [review] must be a table")
    view_mode = str(section.get("view_mode") or "unified").strip().lower()
    state_dir = Path(str(section.get("state_dir") or DEFAULT_STATE_DIR))
    if not state_dir.is_absolute() and base_dir is not None:
        state_dir = base_dir / state_dir
    highlight = section.get("highlight", True)
    if not isinstance(highlight, bool):
        raise RuntimeError("config `highlight` must be true or false")
    return _validated(
        ReviewConfig(
            expand_step=_positive_int(section, "expand_step", DEFAULT_EXPAND_STEP),
            fetch_concurrency=_positive_int(section, "fetch_concurrency", DEFAULT_FETCH_CONCURRENCY),
            view_mode=view_mode,
            state_dir=state_dir,
            highlight=highlight,
            author=str(section.get("author") or "You"),
        )
    )


def load_review_config(path: Path | None) -> ReviewConfig:
    if path is None:
        return ReviewConfig()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise RuntimeError(f"Config not found: {path}") from error
    except tomllib.TOMLDecodeError as error:
        raise RuntimeError(f"Invalid config TOML: {error}") from error
    return config_from_mapping(data, base_dir=path.parent)
