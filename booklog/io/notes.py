# booklog/io/notes.py
from __future__ import annotations

import logging
import re
import time
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import requests
import yaml

from booklog.core.block import BOOK_LOG_BLOCK
from booklog.core.models import CatalogRecord, ReadingStatus
from booklog.io.documents import FileDocumentStore

logger = logging.getLogger(__name__)

NOTE_TAG = "booklog"

_FILENAME_BAD = re.compile(r'[\\/:*?"<>|]')
_TAG_WS = re.compile(r"\s+")
_TAG_BAD = re.compile(r"[^\w]")
_NOTE_ID_RE = re.compile(r"^(\d+)_")
_THUMB_ID_RE = re.compile(r"^(\d+)_thumbnail\.")


def sanitize_file_name(name: str) -> str:
    return _FILENAME_BAD.sub("", name or "").strip()


def sanitize_tag(name: str) -> str:
    return _TAG_BAD.sub("", _TAG_WS.sub("_", name or ""))


def guess_ext_from_url(url: str) -> str:
    parsed = urlparse(url)
    if "." in parsed.path:
        ext = parsed.path.rsplit(".", 1)[-1].lower()
        if ext in ("jpeg", "jpg", "png", "webp", "gif"):
            return ext
    return "jpg"


def fetch_image_bytes(session: requests.Session, url: str, *, timeout_s: int, retries: int) -> Tuple[bytes, str]:
    backoff = 1.0
    for attempt in range(1, retries + 2):
        try:
            r = session.get(url, timeout=timeout_s)
            if r.status_code in (429, 500, 502, 503, 504) and attempt <= retries:
                time.sleep(min(30.0, backoff))
                backoff = min(30.0, backoff * 2)
                continue

            r.raise_for_status()
            content_type = (r.headers.get("Content-Type") or "image/jpeg").split(";")[0].strip().lower()
            if not content_type.startswith("image/"):
                raise RuntimeError(f"Non-image content-type: {content_type}")
            return r.content or b"", content_type
        except requests.RequestException:
            if attempt <= retries:
                time.sleep(min(30.0, backoff))
                backoff = min(30.0, backoff * 2)
                continue
            raise
    raise RuntimeError(f"Image fetch failed: {url}")


def render_book_log_block(media_id: int, status: ReadingStatus = ReadingStatus.PLAN_TO_READ) -> str:
    return f"```{BOOK_LOG_BLOCK}\nmedia_id: {media_id}\nstatus: {status.value}\n\n```\n"


def render_note(record: CatalogRecord, thumbnail_path: str = "") -> str:
    title = record.display_title
    tags = [NOTE_TAG] + [f"{NOTE_TAG}_{sanitize_tag(g)}" for g in record.genres]
    frontmatter = yaml.safe_dump(
        {"anilist_id": record.id, "title": title, "author": record.author, "tags": tags},
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=False,
    )
    embed = (
        f'<div contenteditable="false"><img src="{thumbnail_path}" alt="{title}" width="300" /></div>'
        if thumbnail_path
        else ""
    )
    return f"---\n{frontmatter}---\n\n{embed}\n\n# {title}\n\n{render_book_log_block(record.id)}"


class NoteService:
    """Creates and finds one markdown note per catalog record."""

    def __init__(
        self,
        store: FileDocumentStore,
        *,
        notes_dir: str = "booklog",
        attachments_dir: str = "attachments/book",
        session: Optional[requests.Session] = None,
        timeout_s: int = 20,
        retries: int = 2,
    ) -> None:
        self.store = store
        self.notes_dir = notes_dir.strip("/")
        self.attachments_dir = attachments_dir.strip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.retries = retries

    def note_path(self, record: CatalogRecord) -> str:
        return f"{self.notes_dir}/{record.id}_{sanitize_file_name(record.display_title)}.md"

    def list_notes(self) -> List[str]:
        return self.store.list_markdown(self.notes_dir)

    def find_note(self, media_id: int) -> Optional[str]:
        prefix = f"{int(media_id)}_"
        for path in self.list_notes():
            if path.rsplit("/", 1)[-1].startswith(prefix):
                return path
        return None

    def create_note(self, record: CatalogRecord) -> str:
        path = self.note_path(record)
        if self.store.exists(path):
            raise FileExistsError(f"note already exists: {path}")
        self.store.ensure_dir(self.notes_dir)

        thumbnail = ""
        cover_url = record.best_cover()
        if cover_url:
            thumbnail = self.save_thumbnail(record.id, cover_url)

        self.store.write(path, render_note(record, thumbnail))
        logger.info("note created | id=%s | path=%s | thumbnail=%s", record.id, path, thumbnail or "(none)")
        self.cleanup_attachments()
        return path

    def save_thumbnail(self, media_id: int, url: str) -> str:
        path = f"{self.attachments_dir}/{media_id}_thumbnail.{guess_ext_from_url(url)}"
        if self.store.exists(path):
            return path
        try:
            body, _ = fetch_image_bytes(self.session, url, timeout_s=self.timeout_s, retries=self.retries)
        except (requests.RequestException, RuntimeError) as e:
            logger.warning("thumbnail failed | id=%s | url=%s | err=%r", media_id, url, e)
            return ""
        self.store.ensure_dir(self.attachments_dir)
        self.store.write_bytes(path, body)
        return path

    def cleanup_attachments(self) -> int:
        """Delete thumbnails whose record no longer has a note."""
        valid = set()
        for path in self.list_notes():
            m = _NOTE_ID_RE.match(path.rsplit("/", 1)[-1])
            if m:
                valid.add(m.group(1))

        removed = 0
        for path in self.store.list_files(self.attachments_dir):
            m = _THUMB_ID_RE.match(path.rsplit("/", 1)[-1])
            if m and m.group(1) not in valid:
                self.store.delete(path)
                removed += 1
        if removed:
            logger.info("unused thumbnails removed | count=%s", removed)
        return removed
