"""Data structures shared by the scraper modules."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Candidate:
    """One catalog entry found on a search results page."""

    id: str
    title: str
    scene_url: str
    thumbnail_url: str = ""
