"""Filename to search-query normalization.

A noisy video filename such as ``Channel_-_Some_Title_4k_60fps_1771348033231_xl73j501.mp4``
is reduced to the plain title words the catalog search understands, and a
list of fallback variants is built for filenames whose first query finds
nothing.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Sequence

CHANNEL_DELIMITER = "_-_"
TITLE_DELIMITERS = (" - ", " – ", " — ")

SKIP_TOKENS = frozenset(
    {
        "1080p", "1440p", "2160p", "2880p", "4320p",
        "4k", "5k", "6k", "8k",
        "fps", "60fps", "30fps", "4k60",
        "sbs", "tb", "lr", "vr",
        "mp4", "mkv", "avi", "mov", "wmv",
        "uhd", "hd", "fullhd", "hq",
        "h264", "h265", "x264", "x265", "264", "265",
        "upscale",
    }
)

# Second pass used only while expanding queries.
SEARCH_NOISE_TOKENS = frozenset(
    {
        "1080p", "1440p", "2160p", "2880p", "4320p", "4k", "8k",
        "60fps", "30fps", "fps",
        "h264", "h265", "x264", "x265", "264", "265",
        "sbs", "tb", "lr", "vr",
        "upscale", "remaster",
    }
)

_CAMEL_RE = re.compile(r"([a-z])([A-Z])")
_EXPORT_SUFFIX_RE = re.compile(r"[_\-\s]\d{10,}[_\-\s][a-z0-9]{6,}$")
_SEPARATOR_RE = re.compile(r"[_.\-()]")
_DISALLOWED_RE = re.compile(r"[^a-z0-9\s']+")
_VOWELS = frozenset("aeiou")


def strip_extension(filename: str) -> str:
    """Drop the extension of the last path element, if any."""

    name = filename.strip()
    dot = name.rfind(".")
    if dot < 0 or "/" in name[dot:]:
        return name
    return name[:dot]


def normalize_query(filename: str) -> str:
    """Turn a filename into search text; empty when nothing usable remains."""

    return _normalize_stem(strip_extension(filename))


def _normalize_stem(stem: str) -> str:
    name = _CAMEL_RE.sub(r"\1 \2", stem.strip())
    name = name.lower()
    name = _EXPORT_SUFFIX_RE.sub("", name)

    index = name.find(CHANNEL_DELIMITER)
    if index >= 0:
        right = name[index + len(CHANNEL_DELIMITER):].strip()
        if right:
            name = right
    else:
        name = _strip_short_channel(name)

    name = _SEPARATOR_RE.sub(" ", name)
    name = _DISALLOWED_RE.sub(" ", name)
    tokens = name.split()
    if not tokens:
        return ""

    kept = [tok for tok in tokens if tok not in SKIP_TOKENS and not is_likely_noise_token(tok)]
    if not kept:
        return " ".join(tokens)
    return " ".join(kept)


def _strip_short_channel(name: str) -> str:
    # "channel - title" only counts when the left side is one or two words.
    for delimiter in TITLE_DELIMITERS:
        index = name.find(delimiter)
        if index <= 0:
            continue
        left = name[:index].strip()
        right = name[index + len(delimiter):].strip()
        if right and len(left.split()) <= 2:
            return right
    return name


def is_likely_noise_token(token: str) -> bool:
    """Heuristic for upload ids and random suffixes that survive the fixed skip list."""

    tok = token.strip().lower()
    if not tok:
        return False

    digits = sum(1 for ch in tok if "0" <= ch <= "9")
    letters = sum(1 for ch in tok if "a" <= ch <= "z")
    vowels = sum(1 for ch in tok if ch in _VOWELS)

    if digits == len(tok) and len(tok) >= 4:
        return True
    if len(tok) >= 10 and digits > 0 and letters > 0:
        return True
    if len(tok) >= 8 and digits >= 3 and letters >= 3:
        if vowels == 0:
            return True
        if digits / len(tok) >= 0.35:
            return True
    return False


def strip_search_noise(tokens: Iterable[str]) -> List[str]:
    out: List[str] = []
    for token in tokens:
        tok = token.strip().lower()
        if not tok or tok in SEARCH_NOISE_TOKENS:
            continue
        out.append(tok)
    return out


def build_search_queries(filename: str, base_query: str) -> List[str]:
    """Ordered, de-duplicated query variants, ``base_query`` first."""

    out: List[str] = []
    seen: set[str] = set()

    def add(query: str) -> None:
        query = " ".join(query.split())
        if query and query not in seen:
            seen.add(query)
            out.append(query)

    add(base_query)
    tokens = base_query.split()
    if len(tokens) >= 2:
        add(" ".join(tokens[1:]))
    if len(tokens) >= 3:
        add(" ".join(tokens[:-1]))
    if len(tokens) >= 4:
        add(" ".join(tokens[1:-1]))

    cleaned = strip_search_noise(tokens)
    if cleaned:
        add(" ".join(cleaned))
        if len(cleaned) >= 2:
            add(" ".join(cleaned[1:]))

    raw = strip_extension(filename)
    if raw:
        for delimiter in (CHANNEL_DELIMITER, *TITLE_DELIMITERS):
            if delimiter not in raw:
                continue
            parts = raw.split(delimiter)
            for query in _after_delimiters(parts):
                add(query)
    return out


def _after_delimiters(parts: Sequence[str]) -> List[str]:
    # Text after the first and after the second delimiter occurrence.
    variants = []
    if len(parts) >= 2:
        variants.append(_normalize_stem(" ".join(parts[1:])))
    if len(parts) >= 3:
        variants.append(_normalize_stem(" ".join(parts[2:])))
    return variants
