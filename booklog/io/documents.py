from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Protocol

from booklog.io.utils import atomic_write_bytes, atomic_write_text

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    def read(self, path: str) -> str: ...

    def write(self, path: str, text: str) -> None: ...


class FileDocumentStore:
    """
    DocumentStore over a directory tree ("vault").

    Paths are vault-relative with forward slashes. Text is read and written
    with newline="" so line endings survive untouched.
    """

    def __init__(self, root: str) -> None:
        self.root = Path(root).expanduser().resolve()

    def _abs(self, path: str) -> Path:
        p = (self.root / path).resolve()
        if p != self.root and self.root not in p.parents:
            raise ValueError(f"path escapes vault: {path}")
        return p

    def exists(self, path: str) -> bool:
        return self._abs(path).exists()

    def read(self, path: str) -> str:
        with open(self._abs(path), "r", encoding="utf-8", newline="") as f:
            return f.read()

    def write(self, path: str, text: str) -> None:
        atomic_write_text(text, str(self._abs(path)))
        logger.debug("document written | path=%s | chars=%s", path, len(text))

    def write_bytes(self, path: str, body: bytes) -> None:
        atomic_write_bytes(body, str(self._abs(path)))

    def delete(self, path: str) -> None:
        os.remove(self._abs(path))
        logger.info("deleted | path=%s", path)

    def ensure_dir(self, path: str) -> None:
        self._abs(path).mkdir(parents=True, exist_ok=True)

    def list_files(self, directory: str, suffix: str = "") -> List[str]:
        base = self._abs(directory)
        if not base.is_dir():
            return []
        out = []
        for p in sorted(base.iterdir()):
            if p.is_file() and p.name.endswith(suffix):
                out.append(p.relative_to(self.root).as_posix())
        return out

    def list_markdown(self, directory: str) -> List[str]:
        return self.list_files(directory, ".md")
