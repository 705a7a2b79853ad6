from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from booklog.core.block import BlockPatcher, FieldMutation, SetStatus, SetVolume, read_book_log
from booklog.core.browser import BrowserView, CatalogBrowser, CatalogService
from booklog.core.filters import RecordFilter
from booklog.core.models import CatalogRecord, FilterState, PageCache, ReadingStatus
from booklog.io.documents import DocumentStore
from booklog.io.notes import NoteService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VolumeChecklist:
    total: Optional[int]
    completed: Tuple[int, ...]


class BookLibrary:
    """
    User flows on top of the catalog, the browser and the notes.

    Owns at most one PageCache between a record selection and the return to
    the result list; starting a new search drops it.
    """

    def __init__(
        self,
        service: CatalogService,
        notes: NoteService,
        documents: DocumentStore,
        *,
        record_filter: Optional[RecordFilter] = None,
    ) -> None:
        self.service = service
        self.notes = notes
        self.documents = documents
        self.record_filter = record_filter or RecordFilter()
        self.patcher = BlockPatcher()
        self.cache: Optional[PageCache] = None
        # path -> [lock, holders]; an entry lives only while a patch uses it
        self._locks: Dict[str, List] = {}
        self._locks_guard = threading.Lock()

    # -----------------------------
    # Browsing
    # -----------------------------
    def new_search(self) -> None:
        if self.cache is not None:
            logger.debug("page cache discarded")
        self.cache = None

    async def browser_for(self, filter_state: FilterState, *, view: Optional[BrowserView] = None) -> CatalogBrowser:
        """A browser resumed from the held cache when it matches filter_state, else freshly started."""
        browser = CatalogBrowser(self.service, view=view, record_filter=self.record_filter)
        cache, self.cache = self.cache, None
        if cache is not None and cache.filter_state == filter_state:
            await browser.restore(cache)
        else:
            await browser.start(filter_state)
        return browser

    def select(self, record: CatalogRecord, cache: Optional[PageCache]) -> Optional[str]:
        """Keep the cache for the way back; return the record's note path if it already has one."""
        self.cache = cache
        return self.notes.find_note(record.id)

    # -----------------------------
    # Notes
    # -----------------------------
    def register(self, record: CatalogRecord) -> str:
        detail = self.service.get_detail(record.id)
        if detail is None:
            logger.warning("detail unavailable; registering from search result | id=%s", record.id)
        return self.notes.create_note(detail or record)

    def open_related(self, record_id: int) -> str:
        existing = self.notes.find_note(record_id)
        if existing:
            return existing
        detail = self.service.get_detail(record_id)
        if detail is None:
            raise LookupError(f"catalog record not found: {record_id}")
        return self.notes.create_note(detail)

    @contextmanager
    def _locked(self, path: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.setdefault(path, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[path]

    def patch(self, path: str, mutation: FieldMutation, *, line_range: Optional[Tuple[int, int]] = None) -> bool:
        """Read, patch and write one note. Returns False when the note was already in that state."""
        with self._locked(path):
            text = self.documents.read(path)
            patched = self.patcher.apply(text, mutation, line_range=line_range)
            if patched == text:
                return False
            self.documents.write(path, patched)
        logger.info("note updated | path=%s | mutation=%s", path, mutation)
        return True

    def set_status(self, path: str, status: ReadingStatus) -> bool:
        return self.patch(path, SetStatus(status))

    def set_volume(self, path: str, index: int, completed: bool = True) -> bool:
        return self.patch(path, SetVolume(index, completed))

    def volume_checklist(self, path: str) -> VolumeChecklist:
        entry = read_book_log(self.documents.read(path))
        detail = self.service.get_detail(entry.media_id)
        return VolumeChecklist(
            total=detail.volumes if detail is not None else None,
            completed=entry.completed_volumes,
        )
