"""Runtime configuration for the matcher service."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..scraper.http import DEFAULT_USER_AGENT
from .utils.paths import default_debug_html_dir


class MatcherSettings(BaseSettings):
    """Environment-aware settings for the matcher API, CLI and worker."""

    database_url: str = Field(
        default="sqlite:///./data/scenematch.db",
        description="Connection URL for the catalog and job database.",
    )
    database_echo: bool = Field(
        default=False, description="Enable SQL echo for debugging queries."
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Connection URL for the Redis-backed job queue.",
    )
    redis_queue_name: str = Field(
        default="scenematch",
        description="RQ queue name used for background batch runs.",
    )
    queue_worker_name: str = Field(
        default="matcher-worker",
        description="Identifier used when reporting job worker executions.",
    )
    queue_job_timeout: int = Field(
        default=3600, description="Seconds a background batch may run before RQ kills it."
    )
    site_base_url: str = Field(
        default="https://pmvhaven.com", description="Base URL of the remote scene catalog."
    )
    site_name: str = Field(
        default="PMVHaven",
        description="Catalog name, stripped from page titles and used as the scene site label.",
    )
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    request_timeout: float = Field(
        default=25.0, description="Per-request timeout in seconds for catalog pages."
    )
    request_retries: int = Field(
        default=2, ge=0, description="Extra attempts for a failed catalog request."
    )
    request_retry_backoff: float = Field(
        default=0.5, ge=0, description="Linear backoff in seconds between retries."
    )
    candidate_limit: int = Field(
        default=5, ge=1, description="Maximum candidates collected per search."
    )
    autolink_min_confidence: float = Field(
        default=0.0,
        ge=0,
        le=1,
        description="Top candidates below this confidence are reported but not linked.",
    )
    rerank_enabled: bool = Field(
        default=False, description="Consult the external re-rank provider after scoring."
    )
    rerank_url: str | None = Field(
        default=None, description="Endpoint of the optional re-rank provider."
    )
    rerank_timeout: float = Field(default=30.0)
    debug_html_dump: bool = Field(
        default=False, description="Write every fetched search page to debug_html_dir."
    )
    debug_html_dir: str = Field(default_factory=default_debug_html_dir)
    batch_lock_ttl_seconds: int = Field(
        default=6 * 3600,
        description="Age after which a held batch lock is considered abandoned.",
    )

    model_config = SettingsConfigDict(
        env_prefix="SCENEMATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
    )
