"""Command line interface for the SceneMatch API."""
from __future__ import annotations

import json
from typing import List, Optional

import typer

from backend.matcher_api.services.query import build_search_queries, normalize_query

from .client import create_client


DEFAULT_API_BASE = "http://localhost:8000"

app = typer.Typer(help="Match library files to catalog scenes through the SceneMatch API.")
batch_app = typer.Typer(help="Run or queue batch matches over unlinked files.")
app.add_typer(batch_app, name="batch")
jobs_app = typer.Typer(help="Inspect background batch jobs.")
app.add_typer(jobs_app, name="jobs")
scenes_app = typer.Typer(help="Browse matched scenes.")
app.add_typer(scenes_app, name="scenes")


JOB_STATUS_CHOICES = {"queued", "running", "completed", "failed"}


def _api_base_option() -> typer.Option:
    return typer.Option(
        DEFAULT_API_BASE,
        "--api-base",
        help="Base URL for the SceneMatch API service.",
        show_default=True,
        envvar="SCENEMATCH_API_BASE",
    )


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _batch_params(
    dry_run: bool,
    limit: int,
    concurrency: int,
    volume_id: Optional[int],
    path_prefix: Optional[str],
) -> dict[str, object]:
    params: dict[str, object] = {"dry_run": dry_run, "limit": limit, "concurrency": concurrency}
    if volume_id is not None:
        params["volume_id"] = volume_id
    if path_prefix:
        params["path_prefix"] = path_prefix
    return params


@app.command()
def health(api_base: str = _api_base_option()) -> None:
    """Call the /health endpoint and pretty-print the response."""

    with create_client(api_base) as client:
        response = client.get("/health")
        response.raise_for_status()
        _echo_json(response.json())


@app.command()
def match(
    file_id: int = typer.Argument(..., help="Identifier of the file to match."),
    dry_run: bool = typer.Option(
        False,
        "--dry-run/--apply",
        help="Report the best candidate without linking it.",
        show_default=True,
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Match a single file against the catalog."""

    with create_client(api_base, timeout=120.0) as client:
        response = client.post("/match", json={"file_id": file_id, "dry_run": dry_run})
        if response.status_code >= 400:
            detail = response.json().get("detail", response.text)
            typer.echo(f"Match failed ({response.status_code}): {detail}", err=True)
            raise typer.Exit(code=1)
        _echo_json(response.json())


@app.command()
def normalize(
    filename: str = typer.Argument(..., help="Filename to turn into search queries."),
) -> None:
    """Print the search query and fallback variants derived from a filename."""

    query = normalize_query(filename)
    if not query:
        typer.echo("No usable query could be built from the filename.", err=True)
        raise typer.Exit(code=1)
    _echo_json({"query": query, "variants": build_search_queries(filename, query)})


@batch_app.command("run")
def run_batch(
    dry_run: bool = typer.Option(False, "--dry-run/--apply", show_default=True),
    limit: int = typer.Option(0, help="Files to scan; 0 means 50, capped at 500."),
    concurrency: int = typer.Option(0, help="Parallel workers; 0 means 10, capped at 50."),
    volume_id: Optional[int] = typer.Option(None, help="Restrict to files on one volume."),
    path_prefix: Optional[str] = typer.Option(None, help="Restrict to paths with this prefix."),
    api_base: str = _api_base_option(),
) -> None:
    """Run a batch synchronously and print every per-file outcome."""

    payload = _batch_params(dry_run, limit, concurrency, volume_id, path_prefix)
    with create_client(api_base, timeout=None) as client:
        response = client.post("/match/unmatched", json=payload)
        if response.status_code == 409:
            typer.echo("A batch match is already running.", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@batch_app.command("trigger")
def trigger_batch(
    dry_run: bool = typer.Option(False, "--dry-run/--apply", show_default=True),
    limit: int = typer.Option(0, help="Files to scan; 0 means 50, capped at 500."),
    concurrency: int = typer.Option(0, help="Parallel workers; 0 means 10, capped at 50."),
    volume_id: Optional[int] = typer.Option(None, help="Restrict to files on one volume."),
    path_prefix: Optional[str] = typer.Option(None, help="Restrict to paths with this prefix."),
    api_base: str = _api_base_option(),
) -> None:
    """Queue a background batch run and print the job record."""

    params = _batch_params(dry_run, limit, concurrency, volume_id, path_prefix)
    with create_client(api_base) as client:
        response = client.get("/match/unmatched", params=params)
        response.raise_for_status()
        _echo_json(response.json())


@jobs_app.command("list")
def list_jobs(
    limit: int = typer.Option(10, min=1, max=100, help="Number of recent jobs to display."),
    statuses: Optional[List[str]] = typer.Option(
        None,
        "--status",
        help="Filter results to specific job statuses (repeat the flag).",
    ),
    job_type: Optional[str] = typer.Option(
        None,
        "--type",
        help="Filter results to a specific job type.",
    ),
    api_base: str = _api_base_option(),
) -> None:
    """Display recent batch jobs."""

    params: dict[str, object] = {"limit": limit}
    if statuses:
        normalized_statuses: list[str] = []
        for status in statuses:
            value = status.lower()
            if value not in JOB_STATUS_CHOICES:
                typer.echo(
                    "Invalid status value. Allowed values: "
                    + ", ".join(sorted(JOB_STATUS_CHOICES)),
                    err=True,
                )
                raise typer.Exit(code=1)
            normalized_statuses.append(value)
        params["status"] = normalized_statuses
    if job_type:
        params["type"] = job_type

    with create_client(api_base) as client:
        response = client.get("/jobs", params=params)
        response.raise_for_status()
        _echo_json(response.json())


@jobs_app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Identifier of the job to display."),
    api_base: str = _api_base_option(),
) -> None:
    """Display details for a single job."""

    with create_client(api_base) as client:
        response = client.get(f"/jobs/{job_id}")
        if response.status_code == 404:
            typer.echo("Job not found", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@jobs_app.command("logs")
def job_logs(
    job_id: str = typer.Argument(..., help="Identifier of the job to inspect."),
    limit: int = typer.Option(50, min=1, max=500, help="Maximum number of log entries."),
    api_base: str = _api_base_option(),
) -> None:
    """Display persisted log events for a job."""

    with create_client(api_base) as client:
        response = client.get(f"/jobs/{job_id}/logs", params={"limit": limit})
        if response.status_code == 404:
            typer.echo("Job not found", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())


@scenes_app.command("list")
def list_scenes(
    page: int = typer.Option(1, min=1, help="Page number starting at 1."),
    page_size: int = typer.Option(25, min=1, max=100, help="Number of scenes per page."),
    query: Optional[str] = typer.Option(None, help="Optional title, studio or filename term."),
    studio: Optional[str] = typer.Option(None, help="Filter by studio name."),
    api_base: str = _api_base_option(),
) -> None:
    """Display matched scenes."""

    params: dict[str, object] = {"page": page, "page_size": page_size}
    if query:
        params["query"] = query
    if studio:
        params["studio"] = studio

    with create_client(api_base) as client:
        response = client.get("/scenes", params=params)
        response.raise_for_status()
        _echo_json(response.json())


@scenes_app.command("show")
def show_scene(
    scene_id: str = typer.Argument(..., help="Scene identifier, e.g. custom-pmv-42."),
    api_base: str = _api_base_option(),
) -> None:
    """Display a single scene."""

    with create_client(api_base) as client:
        response = client.get(f"/scenes/{scene_id}")
        if response.status_code == 404:
            typer.echo("Scene not found", err=True)
            raise typer.Exit(code=1)
        response.raise_for_status()
        _echo_json(response.json())
