"""Tests for the per-file match pipeline."""
from __future__ import annotations

import dataclasses
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

import httpx
import pytest
from sqlmodel import Session, select

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.matcher_api.db import (  # noqa: E402
    create_engine_from_settings,
    init_database,
    session_scope,
)
from backend.matcher_api.models import FileRecord, SceneActionRecord  # noqa: E402
from backend.matcher_api.schemas import MatchCandidateModel  # noqa: E402
from backend.matcher_api.services.matcher import (  # noqa: E402
    FileMatcher,
    MatchConflictError,
    MatchFileNotFoundError,
    MatchInputError,
    MatchPersistenceError,
    MatchStage,
    MatchUpstreamError,
    build_scene_id,
    clean_studio_token,
    infer_studio,
)
from backend.matcher_api.services.ranking import RerankError, RerankResult  # noqa: E402
from backend.matcher_api.settings import MatcherSettings  # noqa: E402
from backend.matcher_api.stores import FileStore, SceneStore  # noqa: E402
from backend.matcher_api.stores.scene_store import CatalogStoreError, SceneLink  # noqa: E402
from backend.scraper import Candidate, ScrapeError, SiteClient  # noqa: E402

EXPORT_FILENAME = "DigitalFiend_-_Super_Smash_Hoes_1771348033231_xl73j501.mp4"
SCENE_URL = "https://pmvhaven.com/video/super-smash-hoes_673a8cccaa8d005d3a4d0ae8"


class FakeSite:
    """In-memory catalog site keyed by exact query text."""

    def __init__(
        self,
        results: Dict[str, List[Candidate]] | None = None,
        *,
        failing: Iterable[str] = (),
        details: Dict[str, object] | None = None,
    ) -> None:
        self.results = results or {}
        self.failing = set(failing)
        self.details = details or {}
        self.searches: List[str] = []
        self.enriched: List[str] = []

    def search(self, query: str, limit: int = 5) -> Sequence[Candidate]:
        self.searches.append(query)
        if query in self.failing:
            raise ScrapeError(f"search for {query!r} failed", status_code=503)
        return list(self.results.get(query, []))[:limit]

    def enrich(self, candidate: Candidate) -> Candidate:
        self.enriched.append(candidate.scene_url)
        detail = self.details.get(candidate.scene_url)
        if isinstance(detail, Exception):
            raise detail
        if detail is None:
            return candidate
        return dataclasses.replace(candidate, **detail)


class FailingCatalog:
    """Catalog whose writes fail in a configurable way."""

    def __init__(self, inner: SceneStore, *, fail_apply: bool = False, fail_reindex: bool = False) -> None:
        self.inner = inner
        self.fail_apply = fail_apply
        self.fail_reindex = fail_reindex

    def get(self, scene_id: str):
        return self.inner.get(scene_id)

    def apply_match(self, link: SceneLink):
        if self.fail_apply:
            raise CatalogStoreError("database is locked")
        return self.inner.apply_match(link)

    def reindex(self, scene_ids: Iterable[str]) -> None:
        if self.fail_reindex:
            raise CatalogStoreError("index unavailable")
        self.inner.reindex(scene_ids)


class FailingReranker:
    def rerank(self, query: str, candidates: Sequence[MatchCandidateModel]) -> RerankResult:
        raise RerankError("provider down")


def _candidate(title: str, scene_url: str = SCENE_URL, thumbnail_url: str = "") -> Candidate:
    return Candidate(
        id=scene_url.rsplit("_", 1)[-1],
        title=title,
        scene_url=scene_url,
        thumbnail_url=thumbnail_url,
    )


@pytest.fixture()
def engine(tmp_path: Path):
    settings = MatcherSettings(database_url=f"sqlite:///{tmp_path / 'matcher.db'}")
    engine = create_engine_from_settings(settings)
    init_database(engine)
    yield engine
    engine.dispose()


def seed_file(engine, filename: str = EXPORT_FILENAME, **fields) -> int:
    with session_scope(engine) as session:
        record = FileRecord(filename=filename, path=f"/library/{filename}", **fields)
        session.add(record)
        session.flush()
        return record.id


def make_matcher(engine, site: FakeSite, **kwargs) -> FileMatcher:
    catalog = kwargs.pop("catalog", None) or SceneStore(engine)
    return FileMatcher(files=FileStore(engine), catalog=catalog, site=site, **kwargs)


def test_match_requires_positive_file_id(engine) -> None:
    matcher = make_matcher(engine, FakeSite())

    for file_id in (None, 0, -3):
        with pytest.raises(MatchInputError) as excinfo:
            matcher.match_file(file_id)
        assert excinfo.value.status_code == 400
        assert excinfo.value.stage is MatchStage.VALIDATING


def test_match_unknown_file_returns_not_found(engine) -> None:
    with pytest.raises(MatchFileNotFoundError, match="file_id 999 was not found") as excinfo:
        make_matcher(engine, FakeSite()).match_file(999)

    assert excinfo.value.status_code == 404


def test_match_rejects_filename_without_query_text(engine) -> None:
    file_id = seed_file(engine, "!!!.mp4")
    site = FakeSite()

    with pytest.raises(MatchInputError, match="could not build a query") as excinfo:
        make_matcher(engine, site).match_file(file_id)

    assert excinfo.value.stage is MatchStage.NORMALIZING
    assert site.searches == []


def test_match_without_candidates_reports_no_match(engine) -> None:
    """Every query variant is tried before giving up."""

    file_id = seed_file(engine)
    site = FakeSite()

    result = make_matcher(engine, site).match_file(file_id)

    assert result.query == "super smash hoes"
    assert result.candidates == ()
    assert result.autolinked is False
    assert result.matched_scene_id is None
    assert result.message == "no PMVHaven candidates found"
    assert site.searches == ["super smash hoes", "smash hoes", "super smash"]


def test_match_fails_upstream_when_every_search_errors(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite(failing={"super smash hoes", "smash hoes", "super smash"})

    with pytest.raises(MatchUpstreamError) as excinfo:
        make_matcher(engine, site).match_file(file_id)

    assert excinfo.value.status_code == 424
    assert excinfo.value.stage is MatchStage.SEARCHING
    assert isinstance(excinfo.value.__cause__, ScrapeError)


def test_match_with_partial_search_errors_is_not_upstream_failure(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite(failing={"super smash hoes"})

    result = make_matcher(engine, site).match_file(file_id)

    assert result.candidates == ()
    assert result.message == "no PMVHaven candidates found"


def test_match_uses_fallback_query_when_base_query_finds_nothing(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite({"smash hoes": [_candidate("Super Smash Hoes")]})

    result = make_matcher(engine, site).match_file(file_id, dry_run=True)

    assert result.query == "smash hoes"
    assert site.searches == ["super smash hoes", "smash hoes"]
    assert result.candidates[0].title == "Super Smash Hoes"
    # scored against the base query
    assert result.candidates[0].confidence == pytest.approx(1.0)


def test_dry_run_reports_without_touching_the_database(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite(
        {
            "super smash hoes": [
                _candidate("Random Compilation", "https://pmvhaven.com/video/random_6737b7bf8d304b135bf0c4bc"),
                _candidate("Super Smash Hoes"),
            ]
        }
    )
    matcher = make_matcher(engine, site)

    dry = matcher.match_file(file_id, dry_run=True)

    assert dry.autolinked is False
    assert dry.matched_scene_id == build_scene_id(file_id)
    assert dry.message == "dry run: best candidate found, no database changes applied"
    assert [c.title for c in dry.candidates] == ["Super Smash Hoes", "Random Compilation"]
    assert [c.rank for c in dry.candidates] == [1, 2]
    assert FileStore(engine).get(file_id).scene_id is None
    assert SceneStore(engine).get(build_scene_id(file_id)) is None

    applied = matcher.match_file(file_id)

    assert applied.candidates == dry.candidates


def test_autolink_creates_scene_and_links_file(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite(
        {"super smash hoes": [_candidate("Super Smash Hoes", thumbnail_url="https://pmvhaven.com/t/a.webp")]},
        details={
            SCENE_URL: {
                "title": "Super Smash Hoes",
                "thumbnail_url": "https://video.pmvhaven.com/covers/a.jpg",
            }
        },
    )
    scenes = SceneStore(engine)

    result = make_matcher(engine, site).match_file(file_id)

    scene_id = f"custom-pmv-{file_id}"
    assert result.autolinked is True
    assert result.matched_scene_id == scene_id
    assert result.message == f"file linked to scene {scene_id}"

    scene = scenes.get(scene_id)
    assert scene is not None
    assert scene.title == "Super Smash Hoes"
    assert scene.studio == "DigitalFiend"
    assert scene.site == "PMVHaven"
    assert scene.homepage_url == SCENE_URL
    assert scene.cover_url == "https://video.pmvhaven.com/covers/a.jpg"
    assert scene.covers == ["https://video.pmvhaven.com/covers/a.jpg"]
    assert scene.filenames == [EXPORT_FILENAME]
    assert scene.is_available is True
    assert scene.file_count == 1
    assert FileStore(engine).get(file_id).scene_id == scene.id

    # reindexed so the scene is searchable right away
    assert scenes.list(query="digitalfiend").total == 1

    with Session(engine) as session:
        actions = session.exec(
            select(SceneActionRecord).where(SceneActionRecord.scene_id == scene_id)
        ).all()
    assert [action.action_type for action in actions] == ["match"]
    assert actions[0].changed_column == "filenames"


def test_second_match_of_linked_file_conflicts(engine) -> None:
    file_id = seed_file(engine)
    matcher = make_matcher(engine, FakeSite({"super smash hoes": [_candidate("Super Smash Hoes")]}))
    matcher.match_file(file_id)

    with pytest.raises(MatchConflictError, match="already matched") as excinfo:
        matcher.match_file(file_id)

    assert excinfo.value.status_code == 409


def test_enrichment_fetches_each_scene_url_once(engine) -> None:
    """Duplicate candidates reuse the thumbnail of the first enrichment."""

    file_id = seed_file(engine)
    site = FakeSite(
        {"super smash hoes": [_candidate("Super Smash Hoes"), _candidate("Super Smash Hoes (copy)")]},
        details={SCENE_URL: {"thumbnail_url": "https://video.pmvhaven.com/covers/a.jpg"}},
    )

    result = make_matcher(engine, site).match_file(file_id, dry_run=True)

    assert site.enriched == [SCENE_URL]
    assert [c.thumbnail_url for c in result.candidates] == [
        "https://video.pmvhaven.com/covers/a.jpg",
        "https://video.pmvhaven.com/covers/a.jpg",
    ]


def test_enrichment_failure_keeps_search_thumbnail(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite(
        {"super smash hoes": [_candidate("Super Smash Hoes", thumbnail_url="https://pmvhaven.com/t/a.webp")]},
        details={SCENE_URL: ScrapeError("detail page timed out")},
    )

    result = make_matcher(engine, site).match_file(file_id)

    assert result.autolinked is True
    assert result.candidates[0].thumbnail_url == "https://pmvhaven.com/t/a.webp"
    assert SceneStore(engine).get(result.matched_scene_id).cover_url == "https://pmvhaven.com/t/a.webp"


LIVE_SEARCH_HTML = """
<html><body>
  <a href="/video/super-smash-hoes_673a8cccaa8d005d3a4d0ae8">
    <img src="/thumbs/a.webp" alt="Super Smash Hoes" />
  </a>
</body></html>
"""


def test_enrichment_redirect_loop_is_absorbed(engine) -> None:
    """A detail page that never stops redirecting still yields a linked match."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/search":
            return httpx.Response(200, text=LIVE_SEARCH_HTML)
        return httpx.Response(302, headers={"Location": str(request.url)})

    file_id = seed_file(engine)
    with SiteClient(transport=httpx.MockTransport(handler), retries=0) as site:
        result = make_matcher(engine, site).match_file(file_id)

    assert result.autolinked is True
    assert result.candidates[0].thumbnail_url == "https://pmvhaven.com/thumbs/a.webp"
    assert SceneStore(engine).get(result.matched_scene_id).cover_url == "https://pmvhaven.com/thumbs/a.webp"


def test_undecodable_search_pages_fail_upstream(engine) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")

    file_id = seed_file(engine)
    with SiteClient(transport=httpx.MockTransport(handler), retries=0) as site:
        with pytest.raises(MatchUpstreamError) as excinfo:
            make_matcher(engine, site).match_file(file_id)

    assert excinfo.value.status_code == 424
    assert isinstance(excinfo.value.__cause__, ScrapeError)


def test_low_confidence_is_reported_but_not_linked(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite({"super smash hoes": [_candidate("Unrelated Compilation")]})

    result = make_matcher(engine, site, autolink_min_confidence=0.9).match_file(file_id)

    assert result.autolinked is False
    assert result.matched_scene_id is None
    assert result.message == "best confidence 0.15 is below the autolink threshold 0.90"
    assert FileStore(engine).get(file_id).scene_id is None


def test_persistence_failure_surfaces_as_server_error(engine) -> None:
    file_id = seed_file(engine)
    catalog = FailingCatalog(SceneStore(engine), fail_apply=True)
    site = FakeSite({"super smash hoes": [_candidate("Super Smash Hoes")]})

    with pytest.raises(MatchPersistenceError, match="database is locked") as excinfo:
        make_matcher(engine, site, catalog=catalog).match_file(file_id)

    assert excinfo.value.status_code == 500
    assert excinfo.value.stage is MatchStage.PERSISTING
    assert FileStore(engine).get(file_id).scene_id is None


def test_reindex_failure_does_not_undo_the_link(engine) -> None:
    file_id = seed_file(engine)
    catalog = FailingCatalog(SceneStore(engine), fail_reindex=True)
    site = FakeSite({"super smash hoes": [_candidate("Super Smash Hoes")]})

    result = make_matcher(engine, site, catalog=catalog).match_file(file_id)

    assert result.autolinked is True
    assert FileStore(engine).get(file_id).scene_id is not None


def test_rerank_failure_is_noted_in_message(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite({"super smash hoes": [_candidate("Super Smash Hoes")]})

    result = make_matcher(engine, site, reranker=FailingReranker()).match_file(file_id, dry_run=True)

    assert result.message == (
        "dry run: best candidate found, no database changes applied; "
        "re-rank unavailable: provider down"
    )
    assert result.candidates[0].confidence == pytest.approx(1.0)


def test_site_label_is_used_for_messages_and_scenes(engine) -> None:
    file_id = seed_file(engine)
    site = FakeSite({"super smash hoes": [_candidate("Super Smash Hoes")]})

    result = make_matcher(engine, site, site_label="Mirror").match_file(file_id)

    assert SceneStore(engine).get(result.matched_scene_id).site == "Mirror"


def test_build_scene_id() -> None:
    assert build_scene_id(7) == "custom-pmv-7"


@pytest.mark.parametrize(
    ("filename", "title", "expected"),
    [
        ("clip.mp4", "Arckom - Heaven Remix", "Arckom"),
        ("clip.mp4", "Studio | Some Title", "Studio"),
        (EXPORT_FILENAME, "Super Smash Hoes", "DigitalFiend"),
        ("!!!_-_Cool PMV_-_Title.mp4", "Title", "Cool PMV"),
        ("Arckom - Heaven Remix.mp4", "Heaven Remix", "Arckom"),
        ("plainname.mp4", "Plain", "plainname"),
        ("12345.mp4", "Untitled", ""),
    ],
)
def test_infer_studio(filename: str, title: str, expected: str) -> None:
    assert infer_studio(filename, title) == expected


def test_clean_studio_token() -> None:
    assert clean_studio_token("  [Cool_Studio.]  ") == "Cool Studio"
    assert clean_studio_token("2024") == ""
    assert clean_studio_token("x" * 65) == ""
