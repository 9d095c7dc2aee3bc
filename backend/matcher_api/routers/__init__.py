"""Router exports for the matcher API."""
from . import health, jobs, match, scenes

__all__ = ["health", "jobs", "match", "scenes"]
