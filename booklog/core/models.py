from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

from booklog.core.errors import MalformedFilterState

logger = logging.getLogger(__name__)

PAGE_SIZE = 50


class ReleaseStatus(str, Enum):
    FINISHED = "FINISHED"
    RELEASING = "RELEASING"
    NOT_YET_RELEASED = "NOT_YET_RELEASED"
    CANCELLED = "CANCELLED"
    HIATUS = "HIATUS"


class SortKey(str, Enum):
    POPULARITY_DESC = "POPULARITY_DESC"
    SCORE_DESC = "SCORE_DESC"
    FAVOURITES_DESC = "FAVOURITES_DESC"
    UPDATED_AT_DESC = "UPDATED_AT_DESC"


class MediaFormat(str, Enum):
    UNSPECIFIED = ""
    MANGA = "MANGA"
    NOVEL = "NOVEL"


class VolumeBucket(str, Enum):
    ANY = "any"
    UP_TO_5 = "5"
    UP_TO_10 = "10"
    UP_TO_20 = "20"
    MORE_THAN_20 = "more"

    @property
    def max_volumes(self) -> Optional[int]:
        """Inclusive upper bound, or None for ANY / MORE_THAN_20."""
        if self in (VolumeBucket.ANY, VolumeBucket.MORE_THAN_20):
            return None
        return int(self.value)


class ReadingStatus(str, Enum):
    PLAN_TO_READ = "plan_to_read"
    READING = "reading"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    DROPPED = "dropped"
    NONE = "none"


@dataclass(frozen=True)
class RecordTitle:
    romaji: str = ""
    english: str = ""
    native: str = ""


@dataclass(frozen=True)
class CoverImage:
    extra_large: str = ""
    large: str = ""
    medium: str = ""


@dataclass(frozen=True)
class RankedTag:
    name: str
    rank: int = 0


@dataclass(frozen=True)
class StaffCredit:
    name: str
    native_name: str = ""
    role: str = ""


@dataclass(frozen=True)
class StatusCount:
    status: str
    amount: int


@dataclass(frozen=True)
class RelationEdge:
    relation_type: str
    node: "CatalogRecord"


@dataclass(frozen=True)
class CatalogRecord:
    id: int
    title: RecordTitle
    cover: CoverImage = CoverImage()
    status: Optional[ReleaseStatus] = None
    volumes: Optional[int] = None
    chapters: Optional[int] = None
    popularity: Optional[int] = None
    average_score: Optional[int] = None
    favourites: Optional[int] = None
    start_date: Optional[int] = None  # YYYYMMDD, missing month/day as 00
    genres: Tuple[str, ...] = ()
    tags: Tuple[RankedTag, ...] = ()
    staff: Tuple[StaffCredit, ...] = ()
    relations: Tuple[RelationEdge, ...] = ()
    recommendations: Tuple["CatalogRecord", ...] = ()
    status_distribution: Tuple[StatusCount, ...] = ()
    media_type: str = ""
    format: str = ""

    @property
    def display_title(self) -> str:
        return self.title.native or self.title.romaji or self.title.english or "No Title"

    def best_cover(self) -> str:
        return self.cover.extra_large or self.cover.large or self.cover.medium or ""

    @property
    def author(self) -> str:
        for credit in self.staff:
            if credit.role in ("Story & Art", "Story", "Art"):
                return credit.native_name or credit.name
        return ""

    @property
    def is_finished(self) -> bool:
        return self.status == ReleaseStatus.FINISHED


E = TypeVar("E", bound=Enum)


def _coerce_enum(enum_cls: Type[E], name: str, value: Any, default: E, strict: bool) -> E:
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value))
    except ValueError:
        pass
    # Accept member names too ("more_than_20", "popularity_desc").
    member = getattr(enum_cls, str(value).upper(), None)
    if isinstance(member, enum_cls):
        return member
    if strict:
        raise MalformedFilterState(name, value)
    logger.warning("filter value coerced to default | field=%s | value=%r | default=%s", name, value, default.value)
    return default


def _coerce_decade(value: Any, strict: bool) -> Optional[int]:
    if value is None or value == "" or value == "any":
        return None
    text = str(value).strip().lower().rstrip("s")
    if text.isdigit() and len(text) == 4 and int(text) % 10 == 0:
        return int(text)
    if strict:
        raise MalformedFilterState("era", value)
    logger.warning("filter value coerced to default | field=era | value=%r | default=any", value)
    return None


@dataclass(frozen=True)
class FilterState:
    sort: SortKey = SortKey.POPULARITY_DESC
    query: str = ""
    genre: Optional[str] = None
    tag: Optional[str] = None
    format: MediaFormat = MediaFormat.UNSPECIFIED
    finished_only: bool = False
    volumes: VolumeBucket = VolumeBucket.ANY
    era: Optional[int] = None  # first year of the decade, e.g. 1990

    def __post_init__(self) -> None:
        # Directly constructed states get the same lenient coercion as from_dict.
        object.__setattr__(self, "sort", _coerce_enum(SortKey, "sort", self.sort, SortKey.POPULARITY_DESC, False))
        object.__setattr__(
            self, "format", _coerce_enum(MediaFormat, "format", self.format, MediaFormat.UNSPECIFIED, False)
        )
        object.__setattr__(self, "volumes", _coerce_enum(VolumeBucket, "volumes", self.volumes, VolumeBucket.ANY, False))
        object.__setattr__(self, "era", _coerce_decade(self.era, False))
        object.__setattr__(self, "query", str(self.query or "").strip())
        object.__setattr__(self, "finished_only", bool(self.finished_only))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, strict: bool = False) -> "FilterState":
        """
        Build a FilterState from saved/user-supplied values.

        Out-of-range enum values fall back to their "unspecified/any" default
        (logged) unless strict=True, in which case MalformedFilterState is raised.
        """
        return cls(
            sort=_coerce_enum(SortKey, "sort", data.get("sort"), SortKey.POPULARITY_DESC, strict),
            query=str(data.get("query") or "").strip(),
            genre=(str(data.get("genre")).strip() or None) if data.get("genre") else None,
            tag=(str(data.get("tag")).strip() or None) if data.get("tag") else None,
            format=_coerce_enum(MediaFormat, "format", data.get("format"), MediaFormat.UNSPECIFIED, strict),
            finished_only=bool(data.get("finished_only", False)),
            volumes=_coerce_enum(VolumeBucket, "volumes", data.get("volumes"), VolumeBucket.ANY, strict),
            era=_coerce_decade(data.get("era"), strict),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sort": self.sort.value,
            "query": self.query,
            "genre": self.genre,
            "tag": self.tag,
            "format": self.format.value,
            "finished_only": self.finished_only,
            "volumes": self.volumes.value,
            "era": self.era,
        }


@dataclass
class PageCache:
    """
    Snapshot of a browsing session, handed to the caller on record selection.

    A cache restores a browser once; `consumed` is flipped by the browser on
    restore and a consumed cache restarts the search instead.
    """

    records: Tuple[CatalogRecord, ...]
    current_page: int
    has_more: bool
    scroll_position: float
    filter_state: FilterState
    consumed: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        if self.current_page < 1:
            raise ValueError(f"current_page must be >= 1 (got {self.current_page})")
        if self.scroll_position < 0:
            raise ValueError(f"scroll_position must be >= 0 (got {self.scroll_position})")
        self.records = tuple(self.records)


@dataclass(frozen=True)
class BookLogEntry:
    media_id: int
    status: ReadingStatus
    completed_volumes: Tuple[int, ...] = ()
