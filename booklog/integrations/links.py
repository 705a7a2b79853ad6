from __future__ import annotations

import hashlib
from urllib.parse import quote

from booklog.core.models import CatalogRecord, MediaFormat

KINDLE_SEARCH_URL = "https://www.amazon.co.jp/s"
# Kindle store / "light novel" browse node.
KINDLE_NOVEL_FILTER = "i=digital-text&rh=p_n_feature_nineteen_browse-bin%3A3169286051"
SALE_BON_DETAIL_URL = "https://sale-bon.com/detail/"


def series_hash(title: str) -> str:
    return hashlib.md5(title.encode("utf-8")).hexdigest()


def store_search_url(record: CatalogRecord) -> str:
    title = record.display_title
    if record.format == MediaFormat.NOVEL.value:
        return f"{KINDLE_SEARCH_URL}?k={quote(title, safe='')}&{KINDLE_NOVEL_FILTER}"
    return f"{SALE_BON_DETAIL_URL}?series_hash={series_hash(title)}"
