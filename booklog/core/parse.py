# booklog/core/parse.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from booklog.core.models import (
    CatalogRecord,
    CoverImage,
    FilterState,
    PageCache,
    RankedTag,
    RecordTitle,
    RelationEdge,
    ReleaseStatus,
    StaffCredit,
    StatusCount,
)


def _clean(val: Any) -> str:
    if val is None:
        return ""
    return str(val).strip()


def _opt_int(val: Any) -> Optional[int]:
    if val is None or val == "":
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def _status(val: Any) -> Optional[ReleaseStatus]:
    try:
        return ReleaseStatus(_clean(val).upper())
    except ValueError:
        return None


def _fuzzy_date(val: Any) -> Optional[int]:
    if not isinstance(val, Mapping):
        return None
    year = _opt_int(val.get("year"))
    if not year:
        return None
    return year * 10000 + (_opt_int(val.get("month")) or 0) * 100 + (_opt_int(val.get("day")) or 0)


def _edges(container: Any, key: str) -> List[Any]:
    if not isinstance(container, Mapping):
        return []
    items = container.get(key) or []
    return [x for x in items if isinstance(x, Mapping)]


def parse_media(media: Mapping[str, Any]) -> CatalogRecord:
    """
    Parse a single catalog 'media' node into a CatalogRecord.

    Partial nodes (search results, relation/recommendation stubs) are fine:
    every field except `id` is optional and defaults to empty/unknown.
    """
    title = media.get("title") or {}
    cover = media.get("coverImage") or {}

    staff = []
    for edge in _edges(media.get("staff"), "edges"):
        name = (edge.get("node") or {}).get("name") or {}
        staff.append(
            StaffCredit(
                name=_clean(name.get("full")),
                native_name=_clean(name.get("native")),
                role=_clean(edge.get("role")),
            )
        )

    relations = []
    for edge in _edges(media.get("relations"), "edges"):
        node = edge.get("node")
        if isinstance(node, Mapping) and node.get("id") is not None:
            relations.append(RelationEdge(relation_type=_clean(edge.get("relationType")), node=parse_media(node)))

    recommendations = []
    for rec in _edges(media.get("recommendations"), "nodes"):
        node = rec.get("mediaRecommendation")
        if isinstance(node, Mapping) and node.get("id") is not None:
            recommendations.append(parse_media(node))

    tags = [
        RankedTag(name=_clean(t.get("name")), rank=_opt_int(t.get("rank")) or 0)
        for t in (media.get("tags") or [])
        if isinstance(t, Mapping) and _clean(t.get("name"))
    ]
    tags.sort(key=lambda t: t.rank, reverse=True)

    distribution = [
        StatusCount(status=_clean(s.get("status")), amount=_opt_int(s.get("amount")) or 0)
        for s in _edges(media.get("stats"), "statusDistribution")
    ]

    return CatalogRecord(
        id=int(media["id"]),
        title=RecordTitle(
            romaji=_clean(title.get("romaji")),
            english=_clean(title.get("english")),
            native=_clean(title.get("native")),
        ),
        cover=CoverImage(
            extra_large=_clean(cover.get("extraLarge")),
            large=_clean(cover.get("large")),
            medium=_clean(cover.get("medium")),
        ),
        status=_status(media.get("status")),
        volumes=_opt_int(media.get("volumes")),
        chapters=_opt_int(media.get("chapters")),
        popularity=_opt_int(media.get("popularity")),
        average_score=_opt_int(media.get("averageScore")),
        favourites=_opt_int(media.get("favourites")),
        start_date=_fuzzy_date(media.get("startDate")),
        genres=tuple(_clean(g) for g in (media.get("genres") or []) if _clean(g)),
        tags=tuple(tags),
        staff=tuple(staff),
        relations=tuple(relations),
        recommendations=tuple(recommendations),
        status_distribution=tuple(distribution),
        media_type=_clean(media.get("type")),
        format=_clean(media.get("format")),
    )


def _fuzzy_date_dict(val: Optional[int]) -> Optional[Dict[str, Optional[int]]]:
    if not val:
        return None
    year, rest = divmod(val, 10000)
    month, day = divmod(rest, 100)
    return {"year": year, "month": month or None, "day": day or None}


def record_to_dict(r: CatalogRecord) -> Dict[str, Any]:
    """Inverse of parse_media: the catalog's own node shape."""
    out: Dict[str, Any] = {
        "id": r.id,
        "title": {"romaji": r.title.romaji, "english": r.title.english, "native": r.title.native},
        "coverImage": {"extraLarge": r.cover.extra_large, "large": r.cover.large, "medium": r.cover.medium},
        "status": r.status.value if r.status else None,
        "volumes": r.volumes,
        "chapters": r.chapters,
        "popularity": r.popularity,
        "averageScore": r.average_score,
        "favourites": r.favourites,
        "startDate": _fuzzy_date_dict(r.start_date),
        "genres": list(r.genres),
        "tags": [{"name": t.name, "rank": t.rank} for t in r.tags],
        "type": r.media_type,
        "format": r.format,
    }
    if r.staff:
        out["staff"] = {
            "edges": [
                {"node": {"name": {"full": s.name, "native": s.native_name}}, "role": s.role} for s in r.staff
            ]
        }
    if r.relations:
        out["relations"] = {
            "edges": [{"node": record_to_dict(e.node), "relationType": e.relation_type} for e in r.relations]
        }
    if r.recommendations:
        out["recommendations"] = {"nodes": [{"mediaRecommendation": record_to_dict(n)} for n in r.recommendations]}
    if r.status_distribution:
        out["stats"] = {"statusDistribution": [{"status": s.status, "amount": s.amount} for s in r.status_distribution]}
    return out


def page_cache_to_dict(cache: PageCache) -> Dict[str, Any]:
    return {
        "records": [record_to_dict(r) for r in cache.records],
        "current_page": cache.current_page,
        "has_more": cache.has_more,
        "scroll_position": cache.scroll_position,
        "filter_state": cache.filter_state.to_dict(),
    }


def page_cache_from_dict(data: Mapping[str, Any]) -> PageCache:
    return PageCache(
        records=tuple(parse_media(m) for m in (data.get("records") or [])),
        current_page=int(data.get("current_page") or 1),
        has_more=bool(data.get("has_more")),
        scroll_position=float(data.get("scroll_position") or 0.0),
        filter_state=FilterState.from_dict(data.get("filter_state") or {}),
    )
