"""Filesystem helpers for matcher paths."""
from __future__ import annotations

from pathlib import Path

from platformdirs import user_cache_dir


APP_NAME = "SceneMatch"
APP_AUTHOR = "SceneMatch"


def default_debug_html_dir() -> str:
    """Return the platform-appropriate directory for search page dumps."""

    return str(Path(user_cache_dir(APP_NAME, APP_AUTHOR)) / "html")
