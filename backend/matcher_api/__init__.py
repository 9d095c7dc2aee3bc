"""SceneMatch API: match library files to catalog scenes."""

from .app import create_app

__all__ = ["create_app"]
