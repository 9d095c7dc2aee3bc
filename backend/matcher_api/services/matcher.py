"""Per-file matching pipeline.

``FileMatcher.match_file`` walks one file through the stages named by
:class:`MatchStage`. Failures surface as :class:`MatchError` subclasses that
carry the HTTP status the API reports for them.
"""
from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Dict, List, Sequence

from ...scraper.http import ScrapeError
from ...scraper.models import Candidate
from ..schemas import FileModel, MatchCandidateModel, MatchResultModel
from ..stores.scene_store import CatalogStoreError, SceneLink
from .ports import CatalogSite, CatalogStore, FileRegistry
from .query import (
    CHANNEL_DELIMITER,
    TITLE_DELIMITERS,
    build_search_queries,
    normalize_query,
    strip_extension,
)
from .ranking import NoopReranker, Reranker, rerank_candidates, score_candidates

logger = logging.getLogger(__name__)

SCENE_ID_PREFIX = "custom-pmv-"
DEFAULT_STUDIO = "Custom"
DEFAULT_CANDIDATE_LIMIT = 5


class MatchStage(str, Enum):
    VALIDATING = "validating"
    NORMALIZING = "normalizing"
    SEARCHING = "searching"
    ENRICHING = "enriching"
    RANKING = "ranking"
    DECIDING = "deciding"
    DRY_RUN_REPORT = "dry_run_report"
    PERSISTING = "persisting"


class MatchError(RuntimeError):
    """Base class for matches that end without a result."""

    status_code = 500

    def __init__(self, message: str, *, stage: MatchStage | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class MatchInputError(MatchError):
    status_code = 400


class MatchFileNotFoundError(MatchError):
    status_code = 404


class MatchConflictError(MatchError):
    """Raised when the file is already linked to a scene."""

    status_code = 409


class MatchUpstreamError(MatchError):
    """Raised when every search attempt failed."""

    status_code = 424


class MatchPersistenceError(MatchError):
    status_code = 500


def build_scene_id(file_id: int) -> str:
    return f"{SCENE_ID_PREFIX}{file_id}"


def clean_studio_token(value: str) -> str:
    """Tidy a studio candidate; empty when it does not look like a name."""

    token = value.strip().strip("[](){}-_.,:; ")
    token = token.replace("_", " ").replace(".", " ")
    token = " ".join(token.split())
    if not token or len(token) > 64:
        return ""
    if not any(ch.isascii() and ch.isalpha() for ch in token):
        return ""
    return token


def infer_studio(filename: str, candidate_title: str) -> str:
    """Guess the uploader from the candidate title, then from the filename."""

    for delimiter in (*TITLE_DELIMITERS, "|"):
        index = candidate_title.find(delimiter)
        if index > 0:
            prefix = clean_studio_token(candidate_title[:index])
            if prefix:
                return prefix

    raw = strip_extension(filename)
    if not raw:
        return ""

    if CHANNEL_DELIMITER in raw:
        for position, part in enumerate(raw.split(CHANNEL_DELIMITER)[:3]):
            token = clean_studio_token(part)
            if not token:
                continue
            if "pmv" in token.lower() or position == 0:
                return token

    for delimiter in TITLE_DELIMITERS:
        index = raw.find(delimiter)
        if index > 0:
            prefix = clean_studio_token(raw[:index])
            if prefix:
                return prefix

    return clean_studio_token(raw)


class FileMatcher:
    """Match one library file against the remote catalog."""

    def __init__(
        self,
        *,
        files: FileRegistry,
        catalog: CatalogStore,
        site: CatalogSite,
        reranker: Reranker | None = None,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        autolink_min_confidence: float = 0.0,
        site_label: str = "PMVHaven",
    ) -> None:
        self.files = files
        self.catalog = catalog
        self.site = site
        self.reranker = reranker or NoopReranker()
        self.candidate_limit = candidate_limit
        self.autolink_min_confidence = autolink_min_confidence
        self.site_label = site_label

    def match_file(self, file_id: int | None, *, dry_run: bool = False) -> MatchResultModel:
        file = self._validate(file_id)

        query = normalize_query(file.filename)
        if not query:
            raise MatchInputError(
                "could not build a query from filename", stage=MatchStage.NORMALIZING
            )
        logger.info(
            "start file_id=%d filename=%r query=%r dry_run=%s",
            file.id,
            file.filename,
            query,
            dry_run,
        )

        _enter(file.id, MatchStage.SEARCHING)
        used_query, candidates = self._search(file, query)
        if not candidates:
            logger.info("file_id=%d search returned 0 candidates", file.id)
            return MatchResultModel(
                file_id=file.id,
                filename=file.filename,
                query=query,
                message=f"no {self.site_label} candidates found",
            )

        # Scoped to this file; never shared across files or workers.
        thumbnail_cache: Dict[str, str] = {}
        _enter(file.id, MatchStage.ENRICHING)
        candidates = self._enrich(file, candidates, thumbnail_cache)

        _enter(file.id, MatchStage.RANKING)
        ranked, rerank_note = self._rank(query, candidates)
        top = ranked[0]
        logger.info(
            "file_id=%d top title=%r pmv_id=%s confidence=%.3f",
            file.id,
            top.title,
            top.pmv_id,
            top.confidence,
        )

        _enter(file.id, MatchStage.DECIDING)
        scene_id = build_scene_id(file.id)
        result = {
            "file_id": file.id,
            "filename": file.filename,
            "query": used_query,
            "candidates": tuple(ranked),
        }

        if dry_run:
            _enter(file.id, MatchStage.DRY_RUN_REPORT)
            logger.info("file_id=%d dry run candidate_title=%r", file.id, top.title)
            return MatchResultModel(
                **result,
                matched_scene_id=scene_id,
                message=_with_note(
                    "dry run: best candidate found, no database changes applied", rerank_note
                ),
            )

        if top.confidence < self.autolink_min_confidence:
            logger.info(
                "file_id=%d below threshold confidence=%.3f threshold=%.3f",
                file.id,
                top.confidence,
                self.autolink_min_confidence,
            )
            return MatchResultModel(
                **result,
                message=_with_note(
                    f"best confidence {top.confidence:.2f} is below the autolink threshold "
                    f"{self.autolink_min_confidence:.2f}",
                    rerank_note,
                ),
            )

        _enter(file.id, MatchStage.PERSISTING)
        self._persist(file, scene_id, top)
        logger.info("file_id=%d autolinked scene_id=%s title=%r", file.id, scene_id, top.title)
        return MatchResultModel(
            **result,
            autolinked=True,
            matched_scene_id=scene_id,
            message=_with_note(f"file linked to scene {scene_id}", rerank_note),
        )

    def _validate(self, file_id: int | None) -> FileModel:
        if not file_id or file_id <= 0:
            raise MatchInputError("file_id is required", stage=MatchStage.VALIDATING)
        file = self.files.get(file_id)
        if file is None:
            raise MatchFileNotFoundError(
                f"file_id {file_id} was not found", stage=MatchStage.VALIDATING
            )
        if file.scene_id is not None:
            raise MatchConflictError(
                f"file_id {file_id} is already matched", stage=MatchStage.VALIDATING
            )
        return file

    def _search(self, file: FileModel, query: str) -> tuple[str, List[Candidate]]:
        """Try query variants in order until one yields candidates."""

        variants = build_search_queries(file.filename, query)
        last_error: ScrapeError | None = None
        any_succeeded = False
        for attempt, variant in enumerate(variants, start=1):
            logger.info(
                "file_id=%d search attempt=%d/%d query=%r", file.id, attempt, len(variants), variant
            )
            try:
                found = list(self.site.search(variant, self.candidate_limit))
            except ScrapeError as exc:
                logger.warning("file_id=%d search failed query=%r err=%s", file.id, variant, exc)
                last_error = exc
                continue
            any_succeeded = True
            if found:
                if variant != query:
                    logger.info(
                        "file_id=%d fallback query selected used_query=%r base_query=%r",
                        file.id,
                        variant,
                        query,
                    )
                return variant, found

        if not any_succeeded and last_error is not None:
            raise MatchUpstreamError(str(last_error), stage=MatchStage.SEARCHING) from last_error
        return query, []

    def _enrich(
        self, file: FileModel, candidates: Sequence[Candidate], cache: Dict[str, str]
    ) -> List[Candidate]:
        enriched: List[Candidate] = []
        for position, candidate in enumerate(candidates, start=1):
            key = candidate.scene_url
            if key in cache:
                cached = cache[key]
                if not candidate.thumbnail_url.strip() and cached:
                    candidate = dataclasses.replace(candidate, thumbnail_url=cached)
                enriched.append(candidate)
                continue

            previous = candidate.thumbnail_url.strip()
            try:
                updated = self.site.enrich(candidate)
            except ScrapeError as exc:
                logger.warning(
                    "file_id=%d candidate #%d enrichment failed scene_url=%s err=%s",
                    file.id,
                    position,
                    key,
                    exc,
                )
                cache[key] = previous
                enriched.append(candidate)
                continue

            cache[key] = updated.thumbnail_url.strip()
            source = "scene_html" if cache[key] and cache[key] != previous else "search_html"
            logger.info(
                "file_id=%d candidate #%d thumbnail source=%s thumbnail_url=%s",
                file.id,
                position,
                source,
                updated.thumbnail_url,
            )
            enriched.append(updated)
        return enriched

    def _rank(
        self, query: str, candidates: Sequence[Candidate]
    ) -> tuple[List[MatchCandidateModel], str | None]:
        ranked = score_candidates(query, candidates)
        ranked, failure = rerank_candidates(self.reranker, query, ranked)
        note = f"re-rank unavailable: {failure}" if failure else None
        return ranked, note

    def _persist(self, file: FileModel, scene_id: str, top: MatchCandidateModel) -> None:
        link = SceneLink(
            scene_id=scene_id,
            file_id=file.id,
            filename=file.filename,
            title=top.title,
            source_url=top.scene_url,
            thumbnail_url=top.thumbnail_url,
            studio=infer_studio(file.filename, top.title) or DEFAULT_STUDIO,
            site=self.site_label,
        )
        try:
            self.catalog.apply_match(link)
        except CatalogStoreError as exc:
            logger.error("file_id=%d apply match failed pmv_id=%s err=%s", file.id, top.pmv_id, exc)
            raise MatchPersistenceError(str(exc), stage=MatchStage.PERSISTING) from exc

        try:
            self.catalog.reindex([scene_id])
        except CatalogStoreError as exc:
            logger.warning("file_id=%d reindex failed scene_id=%s err=%s", file.id, scene_id, exc)


def _enter(file_id: int, stage: MatchStage) -> None:
    logger.debug("file_id=%d stage=%s", file_id, stage.value)


def _with_note(message: str, note: str | None) -> str:
    return f"{message}; {note}" if note else message
