# booklog/cli.py
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from booklog.config import AppConfig, load_dotenv
from booklog.core.browser import CatalogBrowser, GridViewport
from booklog.core.errors import BlockError, FetchFailure
from booklog.core.models import CatalogRecord, FilterState, MediaFormat, ReadingStatus, SortKey, VolumeBucket
from booklog.core.tags import display_tag
from booklog.integrations.anilist import AniListClient
from booklog.integrations.http_client import CatalogServiceError, TokenBucket
from booklog.integrations.links import store_search_url
from booklog.io.documents import FileDocumentStore
from booklog.io.notes import NoteService
from booklog.library import BookLibrary

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

logger = logging.getLogger(__name__)
console = Console()


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="booklog",
        description="Search the manga/light-novel catalog and keep reading notes in a markdown vault",
    )
    ap.add_argument("--vault", default=None, help="Vault root (default: BOOKLOG_VAULT or .)")
    ap.add_argument("--timeout", type=int, default=None, help="HTTP timeout seconds")
    ap.add_argument("--retries", type=int, default=None, help="Retry count for 429/5xx/network")
    ap.add_argument("--log-level", default="info", help="Log level: debug, info, warning, error")
    sub = ap.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("search", help="Search the catalog")
    sp.add_argument("query", nargs="?", default="", help="Title keywords")
    sp.add_argument("--genre", default=None, help="Genre (e.g. Fantasy)")
    sp.add_argument("--tag", default=None, help="Tag, canonical or display form (e.g. Isekai)")
    sp.add_argument("--format", default="", choices=[f.value for f in MediaFormat], help="MANGA or NOVEL")
    sp.add_argument("--sort", default=SortKey.POPULARITY_DESC.value, choices=[s.value for s in SortKey])
    sp.add_argument("--finished", action="store_true", help="Finished series only")
    sp.add_argument("--volumes", default="any", choices=[v.value for v in VolumeBucket], help="Volume bucket")
    sp.add_argument("--era", default=None, help="Decade, e.g. 1990 or 1990s")
    sp.add_argument("--pages", type=int, default=1, help="Pages to load (50 results each)")
    sp.add_argument("--rows", type=int, default=0, help="Backfill until this many rows are shown (0 disables)")

    sh = sub.add_parser("show", help="Show catalog detail for one record")
    sh.add_argument("media_id", type=int)

    ad = sub.add_parser("add", help="Create a note for a catalog record")
    ad.add_argument("media_id", type=int)

    st = sub.add_parser("status", help="Set the reading status in a note")
    st.add_argument("note", help="Vault-relative note path")
    st.add_argument("status", choices=[s.value for s in ReadingStatus])

    vo = sub.add_parser("volume", help="Mark a volume completed in a note")
    vo.add_argument("note", help="Vault-relative note path")
    vo.add_argument("index", type=int)
    vo.add_argument("--clear", action="store_true", help="Unmark instead")

    ls = sub.add_parser("volumes", help="Show the volume checklist of a note")
    ls.add_argument("note", help="Vault-relative note path")
    return ap


def _records_table(records: List[CatalogRecord], title: str) -> Table:
    table = Table(title=title)
    table.add_column("id", justify="right")
    table.add_column("title")
    table.add_column("status")
    table.add_column("volumes", justify="right")
    table.add_column("score", justify="right")
    for r in records:
        table.add_row(
            str(r.id),
            r.display_title,
            r.status.value if r.status else "?",
            str(r.volumes) if r.volumes else "?",
            f"{r.average_score}%" if r.average_score else "",
        )
    return table


async def _search(args: argparse.Namespace, service: AniListClient) -> int:
    state = FilterState.from_dict(
        {
            "query": args.query,
            "genre": args.genre,
            "tag": args.tag,
            "format": args.format,
            "sort": args.sort,
            "finished_only": args.finished,
            "volumes": args.volumes,
            "era": args.era,
        }
    )
    view = GridViewport(visible_height=args.rows) if args.rows > 0 else None
    browser = CatalogBrowser(service, view=view)
    await browser.start(state)
    for _ in range(1, max(1, args.pages)):
        if not browser.has_more or browser.last_error:
            break
        await browser.load_more()

    if browser.last_error:
        logger.error("%s", browser.last_error)
        return 1
    records = browser.visible_records()
    more = "more available" if browser.has_more else "end of results"
    console.print(_records_table(records, f"{len(records)} results (page {browser.page}, {more})"))
    return 0


def _show(media_id: int, service: AniListClient) -> int:
    r = service.get_detail(media_id)
    if r is None:
        logger.error("not found: %s", media_id)
        return 1
    console.print(f"[bold]{r.display_title}[/bold] ({r.id})")
    console.print(f"status={r.status.value if r.status else '?'} | volumes={r.volumes or '?'} | score={r.average_score or '-'}")
    if r.author:
        console.print(f"author: {r.author}")
    if r.genres:
        console.print("genres: " + ", ".join(display_tag(g) for g in r.genres))
    for s in r.status_distribution:
        console.print(f"  {s.status}: {s.amount}")
    if r.relations:
        console.print(_records_table([e.node for e in r.relations], "relations"))
    if r.recommendations:
        console.print(_records_table(list(r.recommendations), "recommendations"))
    console.print(f"store: {store_search_url(r)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    level = LOG_LEVELS.get(args.log_level.lower(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )

    used = load_dotenv(".env")
    if used:
        logger.debug("loaded .env: %s", used)

    cfg = AppConfig.from_env()
    if args.vault:
        cfg.vault_dir = args.vault
    if args.timeout is not None:
        cfg.timeout_s = args.timeout
    if args.retries is not None:
        cfg.retries = args.retries
    cfg.validate()

    service = AniListClient(
        api_url=cfg.api_url,
        timeout_s=cfg.timeout_s,
        retries=cfg.retries,
        limiter=TokenBucket(cfg.rate_per_sec, cfg.burst),
    )
    documents = FileDocumentStore(cfg.vault_dir)
    notes = NoteService(
        documents,
        notes_dir=cfg.notes_dir,
        attachments_dir=cfg.attachments_dir,
        timeout_s=cfg.timeout_s,
        retries=cfg.retries,
    )
    library = BookLibrary(service, notes, documents)

    try:
        if args.command == "search":
            return asyncio.run(_search(args, service))
        if args.command == "show":
            return _show(args.media_id, service)
        if args.command == "add":
            path = library.open_related(args.media_id)
            console.print(path)
            return 0
        if args.command == "status":
            changed = library.set_status(args.note, ReadingStatus(args.status))
            logger.info("status %s: %s", "updated" if changed else "unchanged", args.note)
            return 0
        if args.command == "volume":
            changed = library.set_volume(args.note, args.index, completed=not args.clear)
            logger.info("volume %s %s: %s", args.index, "updated" if changed else "unchanged", args.note)
            return 0
        if args.command == "volumes":
            checklist = library.volume_checklist(args.note)
            total = checklist.total or max(checklist.completed, default=-1) + 1
            for i in range(total):
                mark = "x" if i in checklist.completed else " "
                console.print(f"[{mark}] {i}: vol. {i + 1}")
            if checklist.total is None:
                logger.warning("total volume count unknown for %s", args.note)
            return 0
    except (FetchFailure, CatalogServiceError, BlockError, LookupError, FileExistsError, FileNotFoundError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
