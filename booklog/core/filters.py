from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from booklog.core.models import CatalogRecord, FilterState, MediaFormat, ReleaseStatus, VolumeBucket
from booklog.core.tags import canonical_genre, canonical_tag

RequestParams = Dict[str, Any]
RecordPredicate = Callable[[CatalogRecord], bool]

# Criteria names used for the native/client split.
QUERY = "query"
GENRE = "genre"
TAG = "tag"
FORMAT = "format"
STATUS = "status"
VOLUMES = "volumes"
ERA = "era"
ALL_CRITERIA: FrozenSet[str] = frozenset({QUERY, GENRE, TAG, FORMAT, STATUS, VOLUMES, ERA})

# The catalog's volumes_lesser / volumes_greater comparisons are both strict
# (checked against the live API). "up to N" is sent as lesser=N+1, "more than
# 20" as greater=20.
VOLUMES_LESSER_EXCLUSIVE = True
VOLUMES_GREATER_EXCLUSIVE = True
MORE_THAN_VOLUMES = 20

ERA_SPAN_YEARS = 10


def era_date_range(decade: int) -> Tuple[int, int]:
    """
    Decade token -> (inclusive start, exclusive end) as YYYYMMDD integers.

    era_date_range(1990) == (19900101, 20000101)
    """
    return decade * 10000 + 101, (decade + ERA_SPAN_YEARS) * 10000 + 101


def volume_bounds(bucket: VolumeBucket) -> Tuple[Optional[int], Optional[int]]:
    """Server-side (volumes_greater, volumes_lesser) for a bucket."""
    if bucket == VolumeBucket.ANY:
        return None, None
    if bucket == VolumeBucket.MORE_THAN_20:
        return (MORE_THAN_VOLUMES if VOLUMES_GREATER_EXCLUSIVE else MORE_THAN_VOLUMES + 1), None
    n = bucket.max_volumes
    return None, (n + 1 if VOLUMES_LESSER_EXCLUSIVE else n)


def _volumes_match(bucket: VolumeBucket, volumes: Optional[int]) -> bool:
    if bucket == VolumeBucket.ANY:
        return True
    if volumes is None:
        return False
    if bucket == VolumeBucket.MORE_THAN_20:
        return volumes > MORE_THAN_VOLUMES
    return volumes <= (bucket.max_volumes or 0)


def _casefold_in(needle: str, haystack: Iterable[str]) -> bool:
    n = needle.casefold()
    return any(n == h.casefold() for h in haystack)


class RecordFilter:
    """
    Splits a FilterState between the catalog request and a client-side predicate.

    `native` names the criteria the catalog service filters on itself; those go
    into the request and are never re-checked locally. Everything else is
    applied by the predicate. Sort is always server-side.
    """

    def __init__(self, native: Iterable[str] = ALL_CRITERIA) -> None:
        native = frozenset(native)
        unknown = native - ALL_CRITERIA
        if unknown:
            raise ValueError(f"unknown filter criteria: {sorted(unknown)}")
        self.native = native

    def to_request_params(self, state: FilterState) -> RequestParams:
        params: RequestParams = {"sort": [state.sort.value]}
        if QUERY in self.native and state.query:
            params["search"] = state.query
        if GENRE in self.native and state.genre:
            params["genre"] = canonical_genre(state.genre)
        if TAG in self.native and state.tag:
            params["tag"] = canonical_tag(state.tag)
        if FORMAT in self.native and state.format != MediaFormat.UNSPECIFIED:
            params["format"] = state.format.value
        if STATUS in self.native and state.finished_only:
            params["status"] = ReleaseStatus.FINISHED.value
        if VOLUMES in self.native:
            greater, lesser = volume_bounds(state.volumes)
            if greater is not None:
                params["volumes_greater"] = greater
            if lesser is not None:
                params["volumes_lesser"] = lesser
        if ERA in self.native and state.era is not None:
            start, end = era_date_range(state.era)
            params["startDate_greater"] = start
            params["startDate_lesser"] = end
        return params

    def to_client_predicate(self, state: FilterState) -> RecordPredicate:
        checks: List[RecordPredicate] = []

        if QUERY not in self.native and state.query:
            q = state.query.casefold()
            checks.append(
                lambda r: any(q in t.casefold() for t in (r.title.native, r.title.romaji, r.title.english) if t)
            )
        if GENRE not in self.native and state.genre:
            genre = canonical_genre(state.genre)
            checks.append(lambda r: _casefold_in(genre, r.genres))
        if TAG not in self.native and state.tag:
            tag = canonical_tag(state.tag)
            checks.append(lambda r: _casefold_in(tag, (t.name for t in r.tags)) or _casefold_in(tag, r.genres))
        if FORMAT not in self.native and state.format != MediaFormat.UNSPECIFIED:
            fmt = state.format.value
            checks.append(lambda r: r.format == fmt)
        if STATUS not in self.native and state.finished_only:
            checks.append(lambda r: r.is_finished)
        if state.volumes != VolumeBucket.ANY:
            bucket = state.volumes
            if VOLUMES in self.native:
                # Unknown never satisfies a bound, whichever side applied it.
                checks.append(lambda r: r.volumes is not None)
            else:
                checks.append(lambda r: _volumes_match(bucket, r.volumes))
        if ERA not in self.native and state.era is not None:
            # Year-only dates are stored as YYYY0000, so compare on the year.
            first, last = state.era, state.era + ERA_SPAN_YEARS
            checks.append(lambda r: r.start_date is not None and first <= r.start_date // 10000 < last)

        if not checks:
            return lambda r: True
        return lambda r: all(check(r) for check in checks)

