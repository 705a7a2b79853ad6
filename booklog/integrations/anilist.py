# booklog/integrations/anilist.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from booklog.core.models import PAGE_SIZE, CatalogRecord
from booklog.core.parse import parse_media
from .http_client import CatalogNotFoundError, TokenBucket, graphql_post, make_session

ANILIST_API_URL = "https://graphql.anilist.co"
logger = logging.getLogger(__name__)

_SEARCH_VARIABLES = (
    "search",
    "genre",
    "tag",
    "format",
    "sort",
    "status",
    "volumes_greater",
    "volumes_lesser",
    "startDate_greater",
    "startDate_lesser",
)

SEARCH_QUERY = """
query ($page: Int, $perPage: Int, $search: String, $genre: String, $tag: String, $sort: [MediaSort],
       $format: MediaFormat, $status: MediaStatus, $volumes_greater: Int, $volumes_lesser: Int,
       $startDate_greater: FuzzyDateInt, $startDate_lesser: FuzzyDateInt) {
    Page(page: $page, perPage: $perPage) {
        media(search: $search, type: MANGA, genre: $genre, tag: $tag, sort: $sort, format: $format,
              status: $status, volumes_greater: $volumes_greater, volumes_lesser: $volumes_lesser,
              startDate_greater: $startDate_greater, startDate_lesser: $startDate_lesser) {
            id
            title { romaji english native }
            coverImage { medium large extraLarge }
            status
            format
            type
            volumes
            chapters
            popularity
            averageScore
            favourites
            genres
            startDate { year month day }
        }
    }
}
"""

DETAIL_QUERY = """
query ($id: Int) {
    Media(id: $id, type: MANGA) {
        id
        title { romaji english native }
        coverImage { medium large extraLarge }
        status
        format
        type
        volumes
        chapters
        popularity
        averageScore
        favourites
        genres
        startDate { year month day }
        tags { name rank }
        staff { edges { node { name { full native } } role } }
        recommendations(sort: RATING_DESC, perPage: 10) {
            nodes { mediaRecommendation { id title { romaji native } coverImage { medium } type format } }
        }
        relations {
            edges { node { id title { romaji native } type format coverImage { medium } } relationType }
        }
        stats { statusDistribution { status amount } }
    }
}
"""


class AniListClient:
    """CatalogService backed by the AniList GraphQL API."""

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        api_url: str = ANILIST_API_URL,
        timeout_s: int = 20,
        retries: int = 3,
        limiter: Optional[TokenBucket] = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.session = session or make_session()
        self.api_url = api_url
        self.timeout_s = timeout_s
        self.retries = retries
        self.limiter = limiter
        self.page_size = page_size

    def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        return graphql_post(
            self.session,
            self.api_url,
            query=query,
            variables=variables,
            timeout_s=self.timeout_s,
            retries=self.retries,
            limiter=self.limiter,
        )

    def search(self, params: Dict[str, Any], page: int) -> List[CatalogRecord]:
        variables: Dict[str, Any] = {"page": int(page), "perPage": self.page_size}
        for key in _SEARCH_VARIABLES:
            if params.get(key) not in (None, "", []):
                variables[key] = params[key]
        ignored = sorted(set(params) - set(_SEARCH_VARIABLES))
        if ignored:
            logger.warning("search params not supported by catalog | ignored=%s", ignored)

        data = self._query(SEARCH_QUERY, variables)
        media = ((data.get("Page") or {}).get("media")) or []
        out = []
        for node in media:
            if isinstance(node, dict) and node.get("id") is not None:
                out.append(parse_media(node))
        logger.debug("search | page=%s | results=%s", page, len(out))
        return out

    def get_detail(self, media_id: int) -> Optional[CatalogRecord]:
        try:
            data = self._query(DETAIL_QUERY, {"id": int(media_id)})
        except CatalogNotFoundError:
            return None
        node = data.get("Media")
        if not isinstance(node, dict) or node.get("id") is None:
            logger.info("detail not found | id=%s", media_id)
            return None
        return parse_media(node)
