from __future__ import annotations

from typing import Optional, Sequence


class BookLogError(RuntimeError):
    pass


class FetchFailure(BookLogError):
    def __init__(self, page: int, message: str) -> None:
        super().__init__(f"fetch failed (page={page}): {message}")
        self.page = page


class MalformedFilterState(BookLogError, ValueError):
    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"invalid value for {field}: {value!r}")
        self.field = field
        self.value = value


class BlockError(BookLogError):
    pass


class BlockNotFound(BlockError):
    def __init__(self, block_name: str) -> None:
        super().__init__(f"block not found: {block_name}")
        self.block_name = block_name


class AmbiguousBlock(BlockError):
    def __init__(self, block_name: str, start_lines: Sequence[int]) -> None:
        lines = ", ".join(str(n) for n in start_lines)
        super().__init__(f"block {block_name} occurs {len(start_lines)} times (lines {lines})")
        self.block_name = block_name
        self.start_lines = list(start_lines)


class FieldNotFound(BlockError):
    def __init__(self, field: str, block_name: Optional[str] = None) -> None:
        where = f" in block {block_name}" if block_name else ""
        super().__init__(f"field not found{where}: {field}")
        self.field = field


class MalformedField(BlockError):
    def __init__(self, field: str, line: str) -> None:
        super().__init__(f"malformed {field} entry: {line.rstrip()!r}")
        self.field = field
        self.line = line
