# booklog/core/browser.py
from __future__ import annotations

import asyncio
import logging
import math
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from booklog.core.errors import FetchFailure
from booklog.core.filters import RecordFilter, RecordPredicate, RequestParams
from booklog.core.models import PAGE_SIZE, CatalogRecord, FilterState, PageCache

logger = logging.getLogger(__name__)


class CatalogService(Protocol):
    def search(self, params: RequestParams, page: int) -> Sequence[CatalogRecord]: ...

    def get_detail(self, media_id: int) -> Optional[CatalogRecord]: ...


class BrowserView(Protocol):
    """What the browser needs from whatever draws the result list."""

    def render(self, records: Sequence[CatalogRecord], *, append: bool) -> None: ...

    def show_failure(self, message: str) -> None: ...

    def scroll_to(self, offset: float) -> None: ...

    def is_filled(self) -> bool:
        """True once the rendered content is taller than the visible area."""
        ...


class BrowserState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOADING_MORE = "loading_more"


class GridViewport:
    """
    Headless BrowserView: a fixed-height grid of equally sized rows.

    Content height is ceil(rendered / columns) * row_height; the viewport is
    filled once that exceeds visible_height.
    """

    def __init__(self, *, visible_height: float, row_height: float = 1.0, columns: int = 1) -> None:
        self.visible_height = visible_height
        self.row_height = row_height
        self.columns = max(1, int(columns))
        self.rendered: List[CatalogRecord] = []
        self.failures: List[str] = []
        self.scroll_offset = 0.0

    def render(self, records: Sequence[CatalogRecord], *, append: bool) -> None:
        if not append:
            self.rendered = []
            self.scroll_offset = 0.0
        self.rendered.extend(records)

    def show_failure(self, message: str) -> None:
        self.failures.append(message)

    def scroll_to(self, offset: float) -> None:
        self.scroll_offset = float(offset)

    def content_height(self) -> float:
        return math.ceil(len(self.rendered) / self.columns) * self.row_height

    def is_filled(self) -> bool:
        return self.content_height() > self.visible_height


class CatalogBrowser:
    """
    Incremental, filterable view over the catalog's paginated search.

    States: IDLE -> LOADING -> READY <-> LOADING_MORE; READY with
    has_more=False is the exhausted state. All methods are meant to be driven
    from one event loop; the blocking service call runs in a worker thread.
    """

    def __init__(
        self,
        service: CatalogService,
        *,
        view: Optional[BrowserView] = None,
        record_filter: Optional[RecordFilter] = None,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.service = service
        self.view = view
        self.record_filter = record_filter or RecordFilter()
        self.page_size = page_size

        self.state = BrowserState.IDLE
        self.filter_state = FilterState()
        self.records: List[CatalogRecord] = []
        self.page = 0
        self.has_more = False
        self.last_error: Optional[FetchFailure] = None

        self._params: RequestParams = {}
        self._predicate: RecordPredicate = lambda r: True
        self._generation = 0
        self._pending_scroll: Optional[float] = None
        self._failed_page: Optional[int] = None

    # -----------------------------
    # Read-only views
    # -----------------------------
    @property
    def exhausted(self) -> bool:
        return self.state == BrowserState.READY and not self.has_more

    @property
    def loading(self) -> bool:
        return self.state in (BrowserState.LOADING, BrowserState.LOADING_MORE)

    def visible_records(self) -> List[CatalogRecord]:
        return [r for r in self.records if self._predicate(r)]

    # -----------------------------
    # Transitions
    # -----------------------------
    async def start(self, filter_state: FilterState) -> None:
        gen = self._reset(filter_state)
        self.state = BrowserState.LOADING
        logger.info("search start | params=%s | generation=%s", self._params, gen)

        try:
            batch = await self._fetch(1)
        except FetchFailure as e:
            if gen == self._generation:
                self._fail(e)
            return
        if gen != self._generation:
            logger.warning("stale response discarded | page=1 | generation=%s | current=%s", gen, self._generation)
            return

        self.records = list(batch)
        self.page = 1
        self.has_more = len(batch) == self.page_size
        self.state = BrowserState.READY
        logger.debug("page loaded | page=1 | size=%s | has_more=%s", len(batch), self.has_more)
        await self._after_render(batch, append=False)

    async def filter_changed(self, filter_state: FilterState) -> None:
        await self.start(filter_state)

    async def load_more(self) -> None:
        if await self._load_next():
            await self._backfill()

    async def restore(self, cache: PageCache) -> None:
        """
        Re-enter READY from a snapshot without fetching.

        The scroll offset is applied after the records are rendered. A cache
        restores once; a consumed cache starts its search over.
        """
        if cache.consumed:
            logger.info("page cache already used; restarting search")
            await self.start(cache.filter_state)
            return
        cache.consumed = True

        self._reset(cache.filter_state)
        self.records = list(cache.records)
        self.page = cache.current_page
        self.has_more = cache.has_more
        self.state = BrowserState.READY
        self._pending_scroll = cache.scroll_position
        logger.info(
            "session restored | records=%s | page=%s | has_more=%s",
            len(self.records),
            self.page,
            self.has_more,
        )
        await self._after_render(self.records, append=False)

    def snapshot(self, scroll_position: float = 0.0) -> PageCache:
        if self.state == BrowserState.IDLE:
            raise RuntimeError("nothing to snapshot: no search has been started")
        return PageCache(
            records=tuple(self.records),
            current_page=max(1, self.page),
            has_more=self.has_more,
            scroll_position=max(0.0, float(scroll_position)),
            filter_state=self.filter_state,
        )

    async def retry(self) -> None:
        """Re-issue the page that last failed, if any."""
        failed = self._failed_page
        if failed is None or self.loading:
            return
        if failed <= 1:
            await self.start(self.filter_state)
            return
        self.has_more = True
        await self.load_more()

    # -----------------------------
    # Internals
    # -----------------------------
    def _reset(self, filter_state: FilterState) -> int:
        self._generation += 1
        self.filter_state = filter_state
        self._params = self.record_filter.to_request_params(filter_state)
        self._predicate = self.record_filter.to_client_predicate(filter_state)
        self.records = []
        self.page = 0
        self.has_more = False
        self.last_error = None
        self._failed_page = None
        self._pending_scroll = None
        return self._generation

    async def _fetch(self, page: int) -> List[CatalogRecord]:
        try:
            batch = await asyncio.to_thread(self.service.search, dict(self._params), page)
        except Exception as e:
            logger.error("fetch failed | page=%s | params=%s | err=%r", page, self._params, e)
            raise FetchFailure(page, str(e)) from e
        return list(batch)

    async def _load_next(self) -> bool:
        if self.state != BrowserState.READY or not self.has_more:
            logger.debug("load_more ignored | state=%s | has_more=%s", self.state.value, self.has_more)
            return False

        gen = self._generation
        next_page = self.page + 1
        self.state = BrowserState.LOADING_MORE
        self._failed_page = None
        self.last_error = None

        try:
            batch = await self._fetch(next_page)
        except FetchFailure as e:
            if gen == self._generation:
                self._fail(e)
            return False
        if gen != self._generation:
            logger.warning(
                "stale response discarded | page=%s | generation=%s | current=%s", next_page, gen, self._generation
            )
            return False

        self.records.extend(batch)
        self.page = next_page
        self.has_more = len(batch) == self.page_size
        self.state = BrowserState.READY
        logger.debug("page loaded | page=%s | size=%s | has_more=%s", next_page, len(batch), self.has_more)
        self._render(batch, append=True)
        return True

    def _fail(self, err: FetchFailure) -> None:
        self.last_error = err
        self._failed_page = err.page
        self.has_more = False
        self.state = BrowserState.READY
        if self.view is not None:
            self.view.show_failure(str(err))

    def _render(self, batch: Sequence[CatalogRecord], *, append: bool) -> None:
        if self.view is None:
            return
        self.view.render([r for r in batch if self._predicate(r)], append=append)
        if self._pending_scroll is not None:
            self.view.scroll_to(self._pending_scroll)
            self._pending_scroll = None

    async def _after_render(self, batch: Sequence[CatalogRecord], *, append: bool) -> None:
        self._render(batch, append=append)
        await self._backfill()

    async def _backfill(self) -> None:
        if self.view is None:
            return
        while self.has_more and self.state == BrowserState.READY and not self.view.is_filled():
            logger.debug("backfill | page=%s | visible=%s", self.page, len(self.visible_records()))
            if not await self._load_next():
                break
