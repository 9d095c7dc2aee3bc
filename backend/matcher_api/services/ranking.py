"""Candidate scoring and the optional re-rank hook."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, Sequence

import httpx

from ...scraper.models import Candidate
from ..schemas import MatchCandidateModel

logger = logging.getLogger(__name__)

BASELINE_REASON = "baseline text similarity"

_TOKEN_STRIP_RE = re.compile(r"[^a-z0-9\s]+")


def token_set(text: str) -> set[str]:
    """Lowercase alphanumeric tokens of two or more characters."""

    cleaned = _TOKEN_STRIP_RE.sub(" ", text.lower())
    return {tok for tok in cleaned.split() if len(tok) >= 2}


def overlap_score(query_tokens: set[str], title_tokens: set[str]) -> float:
    """Share of query tokens present in the title."""

    if not query_tokens or not title_tokens:
        return 0.0
    return len(query_tokens & title_tokens) / len(query_tokens)


def clamp_score(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def score_candidate(query: str, title: str) -> float:
    overlap = overlap_score(token_set(query), token_set(title))
    query_lower = query.lower()
    contains_bonus = 0.2 if query_lower and query_lower in title.lower() else 0.0
    return clamp_score(0.15 + overlap * 0.7 + contains_bonus)


def sort_candidates(candidates: Iterable[MatchCandidateModel]) -> list[MatchCandidateModel]:
    """Confidence descending, then title ascending, with ranks reassigned."""

    ordered = sorted(candidates, key=lambda item: (-item.confidence, item.title))
    return [
        item.model_copy(update={"rank": position})
        for position, item in enumerate(ordered, start=1)
    ]


def score_candidates(query: str, candidates: Iterable[Candidate]) -> list[MatchCandidateModel]:
    """Baseline ranking from token overlap with the query."""

    scored = [
        MatchCandidateModel(
            pmv_id=candidate.id,
            title=candidate.title,
            scene_url=candidate.scene_url,
            thumbnail_url=candidate.thumbnail_url,
            confidence=score_candidate(query, candidate.title),
            reason=BASELINE_REASON,
        )
        for candidate in candidates
    ]
    return sort_candidates(scored)


# ----------------------------------------------------------------------
# Re-ranking


class RerankError(RuntimeError):
    """Raised when the re-rank provider cannot produce an answer."""


@dataclass(frozen=True, slots=True)
class RerankOverride:
    index: int
    confidence: float
    reason: str = ""


@dataclass(frozen=True, slots=True)
class RerankResult:
    """Sparse overrides keyed by position in the baseline list."""

    best_index: int | None = None
    best_confidence: float = 0.0
    overrides: tuple[RerankOverride, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return self.best_index is None and not self.overrides


class Reranker(Protocol):
    def rerank(self, query: str, candidates: Sequence[MatchCandidateModel]) -> RerankResult:
        ...


class NoopReranker:
    """Default re-ranker: keeps the baseline order."""

    def rerank(self, query: str, candidates: Sequence[MatchCandidateModel]) -> RerankResult:
        return RerankResult()


def extract_json_object(raw: str) -> str:
    """Return the outermost JSON object in ``raw``, tolerating Markdown fences."""

    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
        text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end < start:
        return ""
    return text[start : end + 1]


def parse_rerank_payload(payload: Any) -> RerankResult:
    """Build a :class:`RerankResult` from a provider response."""

    if isinstance(payload, str):
        snippet = extract_json_object(payload)
        if not snippet:
            raise RerankError("re-rank response did not contain a JSON object")
        try:
            payload = json.loads(snippet)
        except ValueError as exc:
            raise RerankError(f"re-rank response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise RerankError("re-rank response must be an object")

    best_index = payload.get("best_index")
    if best_index is not None and not isinstance(best_index, int):
        raise RerankError("best_index must be an integer")

    overrides = []
    for entry in payload.get("per_candidate") or []:
        if not isinstance(entry, dict) or not isinstance(entry.get("index"), int):
            continue
        overrides.append(
            RerankOverride(
                index=entry["index"],
                confidence=_as_float(entry.get("confidence")),
                reason=str(entry.get("reason") or "").strip(),
            )
        )
    return RerankResult(
        best_index=best_index,
        best_confidence=_as_float(payload.get("best_confidence")),
        overrides=tuple(overrides),
    )


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class HttpReranker:
    """Posts ``{query, candidates}`` to an external provider."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self._timeout = timeout
        self._transport = transport

    def rerank(self, query: str, candidates: Sequence[MatchCandidateModel]) -> RerankResult:
        body = {
            "query": query,
            "candidates": [
                {
                    "index": index,
                    "title": item.title,
                    "scene_url": item.scene_url,
                    "confidence": item.confidence,
                }
                for index, item in enumerate(candidates)
            ],
        }
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self.url, json=body)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RerankError(
                f"re-rank provider responded with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RerankError(f"failed to contact re-rank provider: {exc}") from exc

        try:
            payload: Any = response.json()
        except ValueError:
            payload = response.text
        return parse_rerank_payload(payload)


def apply_rerank(
    candidates: Sequence[MatchCandidateModel], result: RerankResult
) -> list[MatchCandidateModel]:
    """Merge sparse overrides into the baseline list and re-sort it."""

    merged = list(candidates)
    touched: set[int] = set()
    for override in result.overrides:
        _apply_override(merged, touched, override)
    if result.best_index is not None and result.best_index not in touched:
        _apply_override(
            merged,
            touched,
            RerankOverride(index=result.best_index, confidence=result.best_confidence),
        )
    return sort_candidates(merged)


def _apply_override(
    merged: list[MatchCandidateModel], touched: set[int], override: RerankOverride
) -> None:
    if not 0 <= override.index < len(merged):
        return
    confidence = clamp_score(override.confidence)
    if confidence <= 0:
        return
    update: dict[str, Any] = {"confidence": confidence}
    if override.reason:
        update["reason"] = override.reason
    merged[override.index] = merged[override.index].model_copy(update=update)
    touched.add(override.index)


def rerank_candidates(
    reranker: Reranker, query: str, candidates: Sequence[MatchCandidateModel]
) -> tuple[list[MatchCandidateModel], str | None]:
    """Run the re-ranker; on failure keep the baseline and return the reason."""

    if not candidates:
        return list(candidates), None
    try:
        result = reranker.rerank(query, candidates)
    except RerankError as exc:
        logger.warning("re-rank unavailable query=%r err=%s", query, exc)
        return list(candidates), str(exc)
    if result.is_empty:
        return list(candidates), None
    return apply_rerank(candidates, result), None


def build_reranker(settings) -> Reranker:
    """Re-ranking is opt-in: both the flag and a provider URL are required."""

    if settings.rerank_enabled and settings.rerank_url:
        return HttpReranker(settings.rerank_url, timeout=settings.rerank_timeout)
    return NoopReranker()
