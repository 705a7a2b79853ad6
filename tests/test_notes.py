import pytest
import yaml

from booklog.core.block import read_book_log
from booklog.core.models import CatalogRecord, CoverImage, ReadingStatus, RecordTitle
from booklog.io.documents import FileDocumentStore
from booklog.io.notes import NoteService, guess_ext_from_url, render_book_log_block, sanitize_file_name, sanitize_tag


class FakeImageResponse:
    status_code = 200
    headers = {"Content-Type": "image/png"}
    content = b"\x89PNG fake"

    def raise_for_status(self):
        return None


class FakeSession:
    def __init__(self):
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        return FakeImageResponse()


def _make_record(media_id=42, title="葬送のフリーレン", cover="https://img.example/cover.png"):
    return CatalogRecord(
        id=media_id,
        title=RecordTitle(native=title),
        cover=CoverImage(large=cover),
        genres=("Slice of Life", "Sci-Fi"),
    )


def _make_service(tmp_path):
    store = FileDocumentStore(str(tmp_path))
    return NoteService(store, session=FakeSession(), retries=0), store


def test_sanitizers() -> None:
    assert sanitize_file_name('a/b:c?"d"') == "abcd"
    assert sanitize_tag("Slice of Life") == "Slice_of_Life"
    assert sanitize_tag("Sci-Fi") == "SciFi"
    assert guess_ext_from_url("https://x/y/z.PNG?1") == "png"
    assert guess_ext_from_url("https://x/y/z") == "jpg"


def test_book_log_block_template() -> None:
    assert render_book_log_block(7) == "```bookLog\nmedia_id: 7\nstatus: plan_to_read\n\n```\n"


def test_create_note_writes_frontmatter_block_and_thumbnail(tmp_path) -> None:
    notes, store = _make_service(tmp_path)
    path = notes.create_note(_make_record())

    assert path == "booklog/42_葬送のフリーレン.md"
    text = store.read(path)
    frontmatter = yaml.safe_load(text.split("---\n")[1])
    assert frontmatter["anilist_id"] == 42
    assert frontmatter["tags"] == ["booklog", "booklog_Slice_of_Life", "booklog_SciFi"]
    assert "attachments/book/42_thumbnail.png" in text

    entry = read_book_log(text)
    assert entry.media_id == 42
    assert entry.status == ReadingStatus.PLAN_TO_READ
    assert (tmp_path / "attachments" / "book" / "42_thumbnail.png").read_bytes() == b"\x89PNG fake"


def test_create_note_twice_raises(tmp_path) -> None:
    notes, _ = _make_service(tmp_path)
    notes.create_note(_make_record())
    with pytest.raises(FileExistsError):
        notes.create_note(_make_record())


def test_note_without_cover_skips_thumbnail(tmp_path) -> None:
    notes, store = _make_service(tmp_path)
    path = notes.create_note(_make_record(cover=""))
    assert "<img" not in store.read(path)
    assert notes.session.urls == []


def test_find_note_matches_id_prefix(tmp_path) -> None:
    notes, _ = _make_service(tmp_path)
    notes.create_note(_make_record(media_id=4, title="A"))
    path = notes.create_note(_make_record(media_id=42, title="B"))

    assert notes.find_note(42) == path
    assert notes.find_note(420) is None


def test_cleanup_removes_orphan_thumbnails(tmp_path) -> None:
    notes, store = _make_service(tmp_path)
    store.ensure_dir("attachments/book")
    store.write_bytes("attachments/book/99_thumbnail.jpg", b"old")
    store.write_bytes("attachments/book/readme.txt", b"keep")

    notes.create_note(_make_record())

    assert not store.exists("attachments/book/99_thumbnail.jpg")
    assert store.exists("attachments/book/readme.txt")
    assert store.exists("attachments/book/42_thumbnail.png")


def test_store_keeps_line_endings(tmp_path) -> None:
    store = FileDocumentStore(str(tmp_path))
    store.write("n.md", "a\r\nb\n")
    assert store.read("n.md") == "a\r\nb\n"


def test_store_rejects_paths_outside_vault(tmp_path) -> None:
    store = FileDocumentStore(str(tmp_path / "vault"))
    with pytest.raises(ValueError):
        store.read("../secret.md")
