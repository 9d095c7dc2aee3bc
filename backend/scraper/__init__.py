"""
Scraper package for the remote scene catalog.

Bundles the HTML search parser, the detail-page enrichment helpers and the
HTTP client used by the matcher service.
"""
from .client import SiteClient
from .http import ScrapeError
from .models import Candidate
from .parser import SearchResultParser, parse_search_html

__all__ = [
    "Candidate",
    "ScrapeError",
    "SearchResultParser",
    "SiteClient",
    "parse_search_html",
]
