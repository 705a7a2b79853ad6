# booklog/core/block.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import yaml

from booklog.core.errors import AmbiguousBlock, BlockNotFound, FieldNotFound, MalformedField
from booklog.core.models import BookLogEntry, ReadingStatus

logger = logging.getLogger(__name__)

BOOK_LOG_BLOCK = "bookLog"
COMPLETED = "completed"

_LINE_RE = re.compile(r"[^\r\n]*(?:\r\n|\r|\n)?")
_EOL_RE = re.compile(r"(\r\n|\r|\n)$")
_FENCE_RE = re.compile(r"^[ \t]{0,3}(`{3,}|~{3,})[ \t]*([^`\s]*)")
_STATUS_RE = re.compile(r"^([ \t]*status:)([ \t]*)(.*)$")
_VOLUME_HEADER_RE = re.compile(r"^([ \t]*)volume_status:[ \t]*(.*)$")
_VOLUME_ENTRY_RE = re.compile(r"^[ \t]+(\d+)[ \t]*:[ \t]*(\S*)[ \t]*$")


# -----------------------------
# Line helpers
# -----------------------------
def split_lines(text: str) -> List[str]:
    """Split keeping each line's own terminator, so "".join() is the input."""
    lines = _LINE_RE.findall(text)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _split_eol(line: str) -> Tuple[str, str]:
    m = _EOL_RE.search(line)
    if not m:
        return line, ""
    return line[: m.start()], m.group(1)


def _indent_width(content: str) -> int:
    return len(content) - len(content.lstrip(" \t"))


def _default_eol(lines: Sequence[str]) -> str:
    for line in lines:
        eol = _split_eol(line)[1]
        if eol:
            return eol
    return "\n"


# -----------------------------
# Block location
# -----------------------------
@dataclass(frozen=True)
class BlockSpan:
    """Line indices of one fenced block: start fence, first body line, closing fence (or len(lines))."""

    start: int
    body_start: int
    end: int


def _scan_blocks(lines: Sequence[str], block_name: str) -> List[BlockSpan]:
    spans: List[BlockSpan] = []
    i = 0
    while i < len(lines):
        content = _split_eol(lines[i])[0]
        m = _FENCE_RE.match(content)
        if not m:
            i += 1
            continue
        fence = m.group(1)
        close_re = re.compile(r"^[ \t]{0,3}" + re.escape(fence[0]) + "{" + str(len(fence)) + r",}[ \t]*$")
        j = i + 1
        while j < len(lines) and not close_re.match(_split_eol(lines[j])[0]):
            j += 1
        # Fences of other languages are skipped whole so their contents never match.
        if m.group(2) == block_name:
            spans.append(BlockSpan(start=i, body_start=i + 1, end=j))
        i = j + 1
    return spans


def find_block(
    lines: Sequence[str],
    block_name: str,
    *,
    line_range: Optional[Tuple[int, int]] = None,
) -> BlockSpan:
    """
    Locate the single `block_name` fence.

    line_range is an inclusive (first, last) pair of 0-based line numbers; when
    given, only a block whose opening fence falls inside it is considered.
    """
    spans = _scan_blocks(lines, block_name)
    if line_range is not None:
        lo, hi = line_range
        spans = [s for s in spans if lo <= s.start <= hi]
    if not spans:
        raise BlockNotFound(block_name)
    if len(spans) > 1:
        raise AmbiguousBlock(block_name, [s.start for s in spans])
    return spans[0]


# -----------------------------
# Field mutations
# -----------------------------
@dataclass(frozen=True)
class SetStatus:
    status: ReadingStatus

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", ReadingStatus(self.status))


@dataclass(frozen=True)
class SetVolume:
    index: int
    completed: bool = True

    def __post_init__(self) -> None:
        if int(self.index) < 0:
            raise ValueError(f"volume index must be >= 0 (got {self.index})")
        object.__setattr__(self, "index", int(self.index))


FieldMutation = Union[SetStatus, SetVolume]


class StatusFieldCodec:
    """Single-line `status: <token>` field."""

    field = "status"

    def find(self, lines: Sequence[str], span: BlockSpan) -> Optional[int]:
        for i in range(span.body_start, span.end):
            if _STATUS_RE.match(_split_eol(lines[i])[0]):
                return i
        return None

    def read(self, line: str) -> str:
        m = _STATUS_RE.match(_split_eol(line)[0])
        return m.group(3).strip() if m else ""

    def render(self, line: str, status: ReadingStatus) -> str:
        content, eol = _split_eol(line)
        m = _STATUS_RE.match(content)
        if not m:
            raise MalformedField(self.field, line)
        sep = m.group(2) or " "
        return f"{m.group(1)}{sep}{status.value}{eol}"

    def apply(self, lines: List[str], span: BlockSpan, mutation: SetStatus, block_name: str) -> bool:
        idx = self.find(lines, span)
        if idx is None:
            raise FieldNotFound(self.field, block_name)
        if self.read(lines[idx]) == mutation.status.value:
            return False
        lines[idx] = self.render(lines[idx], mutation.status)
        return True


class VolumeMapCodec:
    """
    Sparse `volume_status:` map of volume index -> completed.

    The map body is the run of lines directly under the header that are
    indented deeper than it; the first blank, shallower or fence line ends it.
    A deeper-indented line after a blank one is a split map and is rejected.
    """

    field = "volume_status"

    def find(self, lines: Sequence[str], span: BlockSpan) -> Optional[Tuple[int, int]]:
        """(header index, index one past the last body line), or None."""
        for i in range(span.body_start, span.end):
            content = _split_eol(lines[i])[0]
            m = _VOLUME_HEADER_RE.match(content)
            if not m:
                continue
            if m.group(2).strip():
                raise MalformedField(self.field, lines[i])
            header_indent = len(m.group(1))
            j = i + 1
            while j < span.end:
                body = _split_eol(lines[j])[0]
                if not body.strip() or _indent_width(body) <= header_indent:
                    break
                j += 1
            # Entries resuming after a blank line still belong to the map for a YAML reader.
            k = j
            while k < span.end and not _split_eol(lines[k])[0].strip():
                k += 1
            if k > j and k < span.end and _indent_width(_split_eol(lines[k])[0]) > header_indent:
                raise MalformedField(self.field, lines[k])
            return i, j
        return None

    def parse(self, lines: Sequence[str]) -> Dict[int, str]:
        out: Dict[int, str] = {}
        for line in lines:
            m = _VOLUME_ENTRY_RE.match(_split_eol(line)[0])
            if not m or m.group(2) != COMPLETED:
                raise MalformedField(self.field, line)
            out[int(m.group(1))] = COMPLETED
        return out

    def render(self, header_indent: str, entries: Dict[int, str], eol: str) -> List[str]:
        # Numeric order: 10 sorts after 9.
        return [f"{header_indent}  {k}: {entries[k]}{eol}" for k in sorted(entries)]

    def apply(self, lines: List[str], span: BlockSpan, mutation: SetVolume, block_name: str) -> bool:
        found = self.find(lines, span)
        eol = _default_eol(lines)

        if found is None:
            if not mutation.completed:
                return False
            self._insert(lines, span, mutation.index, eol)
            return True

        header, run_end = found
        current = self.parse(lines[header + 1 : run_end])
        updated = dict(current)
        if mutation.completed:
            updated[mutation.index] = COMPLETED
        else:
            updated.pop(mutation.index, None)
        if updated == current:
            return False

        header_content, header_eol = _split_eol(lines[header])
        header_indent = header_content[: _indent_width(header_content)]
        line_eol = header_eol or eol
        region = [header_content + line_eol] + self.render(header_indent, updated, line_eol)
        if not _split_eol(lines[run_end - 1])[1]:
            region[-1] = _split_eol(region[-1])[0]
        lines[header:run_end] = region
        return True

    def _insert(self, lines: List[str], span: BlockSpan, index: int, eol: str) -> None:
        at = span.body_start
        for i in range(span.body_start, span.end):
            if _split_eol(lines[i])[0].strip():
                at = i + 1
        indent = ""
        for i in range(span.body_start, span.end):
            content = _split_eol(lines[i])[0]
            if content.strip():
                indent = content[: _indent_width(content)]
                break
        new = [f"{indent}volume_status:{eol}"] + self.render(indent, {index: COMPLETED}, eol)
        if at > 0 and not _split_eol(lines[at - 1])[1]:
            new[0] = eol + new[0]
            new[-1] = _split_eol(new[-1])[0]
        lines[at:at] = new


class BlockPatcher:
    """
    Applies one field mutation to a named fenced block inside a document.

    Only the lines of the mutated field change; every other byte of the
    document (other fields, other blocks, line endings) passes through as-is.
    No locking: callers serialize writes to the same document.
    """

    def __init__(self, block_name: str = BOOK_LOG_BLOCK) -> None:
        self.block_name = block_name
        self.status_codec = StatusFieldCodec()
        self.volume_codec = VolumeMapCodec()

    def apply(
        self,
        text: str,
        mutation: FieldMutation,
        *,
        line_range: Optional[Tuple[int, int]] = None,
    ) -> str:
        lines = split_lines(text)
        span = find_block(lines, self.block_name, line_range=line_range)
        if isinstance(mutation, SetStatus):
            changed = self.status_codec.apply(lines, span, mutation, self.block_name)
        elif isinstance(mutation, SetVolume):
            changed = self.volume_codec.apply(lines, span, mutation, self.block_name)
        else:
            raise TypeError(f"unsupported mutation: {mutation!r}")
        if not changed:
            logger.debug("patch no-op | block=%s | mutation=%s", self.block_name, mutation)
            return text
        logger.debug("patched | block=%s | mutation=%s | line=%s", self.block_name, mutation, span.start)
        return "".join(lines)

    def completed_volumes(self, text: str, *, line_range: Optional[Tuple[int, int]] = None) -> List[int]:
        lines = split_lines(text)
        span = find_block(lines, self.block_name, line_range=line_range)
        found = self.volume_codec.find(lines, span)
        if found is None:
            return []
        header, run_end = found
        return sorted(self.volume_codec.parse(lines[header + 1 : run_end]))


def apply_field(
    text: str,
    block_name: str,
    mutation: FieldMutation,
    *,
    line_range: Optional[Tuple[int, int]] = None,
) -> str:
    return BlockPatcher(block_name).apply(text, mutation, line_range=line_range)


def read_book_log(text: str, *, line_range: Optional[Tuple[int, int]] = None) -> BookLogEntry:
    """Parse a note's bookLog block (YAML) into a BookLogEntry."""
    lines = split_lines(text)
    span = find_block(lines, BOOK_LOG_BLOCK, line_range=line_range)
    source = "".join(lines[span.body_start : span.end])
    try:
        params = yaml.safe_load(source) or {}
    except yaml.YAMLError as e:
        raise MalformedField(BOOK_LOG_BLOCK, source) from e
    if not isinstance(params, dict):
        raise MalformedField(BOOK_LOG_BLOCK, source)

    media_id = params.get("media_id")
    if media_id is None or not str(media_id).strip().isdigit():
        raise FieldNotFound("media_id", BOOK_LOG_BLOCK)

    raw_status = str(params.get("status") or ReadingStatus.PLAN_TO_READ.value)
    try:
        status = ReadingStatus(raw_status)
    except ValueError:
        logger.warning("unknown reading status | value=%r | using=%s", raw_status, ReadingStatus.PLAN_TO_READ.value)
        status = ReadingStatus.PLAN_TO_READ

    volumes = params.get("volume_status") or {}
    completed = []
    if isinstance(volumes, dict):
        completed = sorted(int(k) for k, v in volumes.items() if str(k).isdigit() and v == COMPLETED)

    return BookLogEntry(media_id=int(media_id), status=status, completed_volumes=tuple(completed))
