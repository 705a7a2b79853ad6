from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)

TRANSLATIONS_PATH = Path(__file__).resolve().parent.parent / "data" / "tag_translations.yaml"

_DISPLAY_RE = re.compile(r".*\((.+)\)$")


def _read_table(path: Path) -> Dict[str, str]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as e:
        raise SystemExit(f"Tag table not found: {path}") from e
    except Exception as e:
        raise SystemExit(f"Failed to read tag table: {path} ({e})") from e
    out = {str(k).strip(): str(v).strip() for k, v in data.items() if str(k).strip() and v}
    logger.debug("loaded tag table | path=%s | entries=%s", path, len(out))
    return out


@lru_cache(maxsize=4)
def load_translations(path: Optional[str] = None) -> Dict[str, str]:
    return _read_table(Path(path) if path else TRANSLATIONS_PATH)


def display_tag(tag: str, table: Optional[Dict[str, str]] = None) -> str:
    table = load_translations() if table is None else table
    jp = table.get(tag)
    return f"{jp} ({tag})" if jp else tag


def canonical_tag(label: str, table: Optional[Dict[str, str]] = None) -> str:
    """
    "異世界 (Isekai)" -> "Isekai"; "異世界" -> "Isekai"; anything else unchanged.
    """
    label = (label or "").strip()
    m = _DISPLAY_RE.match(label)
    if m:
        return m.group(1).strip()
    table = load_translations() if table is None else table
    for canonical, jp in table.items():
        if jp == label:
            return canonical
    return label


def canonical_genre(label: str, table: Optional[Dict[str, str]] = None) -> str:
    """Like canonical_tag, but also restores the catalog's capitalisation ("fantasy" -> "Fantasy")."""
    table = load_translations() if table is None else table
    name = canonical_tag(label, table)
    folded = name.casefold()
    for canonical in table:
        if canonical.casefold() == folded:
            return canonical
    return name
