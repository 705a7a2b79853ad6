from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from booklog.integrations.anilist import ANILIST_API_URL


def _strip_inline_comment(val: str) -> str:
    in_single = False
    in_double = False
    for i, ch in enumerate(val):
        if ch == "'" and not in_double:
            in_single = not in_single
            continue
        if ch == '"' and not in_single:
            in_double = not in_double
            continue
        if ch == "#" and not in_single and not in_double:
            return val[:i].rstrip()
    return val.rstrip()


def _parse_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        k, v = line.split("=", 1)
        k = k.strip()
        v = _strip_inline_comment(v.strip())
        if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
            v = v[1:-1]
        if k and k not in os.environ:
            os.environ[k] = v


def load_dotenv(path: str = ".env") -> Optional[str]:
    """
    Loads environment variables from a .env file.

    Search order:
    1) ENV_PATH (if set)
    2) explicit `path` as provided (relative to CWD or absolute)
    3) project root (parent of the booklog package directory)
    4) current working directory

    Variables already present in the environment win.
    Returns the resolved .env path used, or None if not found.
    """
    override = os.getenv("ENV_PATH")
    candidates: List[Path] = []
    if override:
        candidates.append(Path(override).expanduser())

    p = Path(path).expanduser()
    candidates.append(p if p.is_absolute() else (Path.cwd() / p))

    pkg_dir = Path(__file__).resolve().parent
    candidates.append(pkg_dir.parent / ".env")

    candidates.append(Path.cwd() / ".env")

    seen = set()
    for c in candidates:
        c = c.resolve()
        if str(c) in seen:
            continue
        seen.add(str(c))
        if c.exists() and c.is_file():
            _parse_env_file(c)
            return str(c)

    return None


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise SystemExit(f"{name} must be an integer (got {raw!r}).") from e


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise SystemExit(f"{name} must be a number (got {raw!r}).") from e


@dataclass
class AppConfig:
    vault_dir: str
    notes_dir: str
    attachments_dir: str

    api_url: str
    timeout_s: int
    retries: int
    rate_per_sec: float
    burst: int

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            vault_dir=(os.getenv("BOOKLOG_VAULT") or ".").strip(),
            notes_dir=(os.getenv("BOOKLOG_NOTES_DIR") or "booklog").strip(),
            attachments_dir=(os.getenv("BOOKLOG_ATTACHMENTS_DIR") or "attachments/book").strip(),
            api_url=(os.getenv("ANILIST_API_URL") or ANILIST_API_URL).strip(),
            timeout_s=_env_int("BOOKLOG_TIMEOUT", 20),
            retries=_env_int("BOOKLOG_RETRIES", 3),
            rate_per_sec=_env_float("BOOKLOG_RATE_PER_SEC", 1.5),
            burst=_env_int("BOOKLOG_BURST", 3),
        )

    def validate(self) -> None:
        if self.timeout_s <= 0:
            raise SystemExit("BOOKLOG_TIMEOUT must be positive.")
        if self.retries < 0:
            raise SystemExit("BOOKLOG_RETRIES must be >= 0.")
        if self.rate_per_sec <= 0 or self.burst < 1:
            raise SystemExit("BOOKLOG_RATE_PER_SEC must be positive and BOOKLOG_BURST >= 1.")
        if not (self.api_url.startswith("http://") or self.api_url.startswith("https://")):
            raise SystemExit("ANILIST_API_URL must be an http(s) URL.")
        if not self.notes_dir:
            raise SystemExit("BOOKLOG_NOTES_DIR must not be empty.")
