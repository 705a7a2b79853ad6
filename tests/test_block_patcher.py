import pytest

from booklog.core.block import BlockPatcher, SetStatus, SetVolume, apply_field, read_book_log, split_lines
from booklog.core.errors import AmbiguousBlock, BlockNotFound, FieldNotFound, MalformedField
from booklog.core.models import ReadingStatus

DOC = (
    "---\n"
    "anilist_id: 42\n"
    "---\n"
    "\n"
    "# Frieren\n"
    "\n"
    "status: outside the block\n"
    "\n"
    "```bookLog\n"
    "media_id: 42\n"
    "status: reading\n"
    "volume_status:\n"
    "  0: completed\n"
    "  2: completed\n"
    "```\n"
    "\n"
    "Trailing paragraph.\n"
)


def _changed_lines(before: str, after: str):
    a, b = before.splitlines(keepends=True), after.splitlines(keepends=True)
    assert len(a) == len(b)
    return [(x, y) for x, y in zip(a, b) if x != y]


def test_split_lines_round_trips() -> None:
    text = "a\r\nb\nc\rd"
    assert split_lines(text) == ["a\r\n", "b\n", "c\r", "d"]
    assert "".join(split_lines(text)) == text


def test_status_change_touches_one_line() -> None:
    out = BlockPatcher().apply(DOC, SetStatus(ReadingStatus.COMPLETED))
    assert _changed_lines(DOC, out) == [("status: reading\n", "status: completed\n")]
    assert "status: outside the block\n" in out


def test_same_status_is_byte_identical() -> None:
    assert BlockPatcher().apply(DOC, SetStatus("reading")) == DOC


def test_status_preserves_separator_and_indent() -> None:
    text = "```bookLog\n  status:    reading\n```\n"
    out = BlockPatcher().apply(text, SetStatus(ReadingStatus.DROPPED))
    assert out == "```bookLog\n  status:    dropped\n```\n"


def test_volume_set_and_clear_keep_numeric_order() -> None:
    patcher = BlockPatcher()
    out = patcher.apply(DOC, SetVolume(1))
    assert "volume_status:\n  0: completed\n  1: completed\n  2: completed\n```\n" in out

    out = patcher.apply(out, SetVolume(0, completed=False))
    assert "volume_status:\n  1: completed\n  2: completed\n```\n" in out

    out = patcher.apply(out, SetVolume(1, completed=False))
    out = patcher.apply(out, SetVolume(2, completed=False))
    assert "status: reading\nvolume_status:\n```\n\nTrailing paragraph.\n" in out
    assert out.startswith(DOC[: DOC.index("volume_status:")])


def test_ten_sorts_after_nine() -> None:
    text = "```bookLog\nstatus: reading\nvolume_status:\n  9: completed\n```\n"
    out = BlockPatcher().apply(text, SetVolume(10))
    assert out == "```bookLog\nstatus: reading\nvolume_status:\n  9: completed\n  10: completed\n```\n"

    out = BlockPatcher().apply("```bookLog\nvolume_status:\n  10: completed\n```\n", SetVolume(9))
    assert out == "```bookLog\nvolume_status:\n  9: completed\n  10: completed\n```\n"


def test_add_volume_to_existing_map() -> None:
    text = "```bookLog\nstatus: plan_to_read\nvolume_status:\n  0: completed\n```\n"
    out = apply_field(text, "bookLog", SetVolume(1))
    assert out == "```bookLog\nstatus: plan_to_read\nvolume_status:\n  0: completed\n  1: completed\n```\n"


def test_existing_volume_is_a_no_op() -> None:
    text = "```bookLog\nvolume_status:\n  2: completed\n  0: completed\n```\n"
    assert BlockPatcher().apply(text, SetVolume(0)) == text
    assert BlockPatcher().apply(text, SetVolume(5, completed=False)) == text


def test_map_ends_at_shallower_field() -> None:
    text = "```bookLog\nvolume_status:\n  0: completed\nnotes: keep me\n```\n"
    out = BlockPatcher().apply(text, SetVolume(3))
    assert out == "```bookLog\nvolume_status:\n  0: completed\n  3: completed\nnotes: keep me\n```\n"


def test_missing_map_is_inserted_after_last_field() -> None:
    text = "```bookLog\nmedia_id: 7\nstatus: plan_to_read\n\n```\n"
    out = BlockPatcher().apply(text, SetVolume(0))
    assert out == "```bookLog\nmedia_id: 7\nstatus: plan_to_read\nvolume_status:\n  0: completed\n\n```\n"

    out = BlockPatcher().apply(out, SetVolume(4))
    assert "volume_status:\n  0: completed\n  4: completed\n\n```\n" in out


def test_clearing_missing_map_is_a_no_op() -> None:
    text = "```bookLog\nstatus: plan_to_read\n```\n"
    assert BlockPatcher().apply(text, SetVolume(0, completed=False)) == text


def test_crlf_line_endings_are_preserved() -> None:
    text = DOC.replace("\n", "\r\n")
    out = BlockPatcher().apply(text, SetVolume(5))
    assert "  2: completed\r\n  5: completed\r\n```\r\n" in out
    assert "\n" not in out.replace("\r\n", "")

    out = BlockPatcher().apply(out, SetStatus(ReadingStatus.ON_HOLD))
    assert "status: on_hold\r\n" in out


def test_document_without_trailing_newline() -> None:
    text = "```bookLog\nstatus: reading\nvolume_status:\n  0: completed"
    out = BlockPatcher().apply(text, SetVolume(1))
    assert out == "```bookLog\nstatus: reading\nvolume_status:\n  0: completed\n  1: completed"


def test_missing_block_raises() -> None:
    with pytest.raises(BlockNotFound):
        BlockPatcher().apply("# nothing here\n", SetStatus("reading"))


def test_missing_status_raises() -> None:
    with pytest.raises(FieldNotFound):
        BlockPatcher().apply("```bookLog\nmedia_id: 1\n```\n", SetStatus("reading"))


def test_two_blocks_are_ambiguous_unless_ranged() -> None:
    text = "```bookLog\nstatus: reading\n```\n\n```bookLog\nstatus: dropped\n```\n"
    with pytest.raises(AmbiguousBlock) as exc:
        BlockPatcher().apply(text, SetStatus("completed"))
    assert exc.value.start_lines == [0, 4]

    out = BlockPatcher().apply(text, SetStatus("completed"), line_range=(4, 6))
    assert out == "```bookLog\nstatus: reading\n```\n\n```bookLog\nstatus: completed\n```\n"


def test_other_fences_are_skipped() -> None:
    text = (
        "````markdown\n"
        "```bookLog\n"
        "status: example\n"
        "```\n"
        "````\n"
        "\n"
        "```bookLog\n"
        "status: reading\n"
        "```\n"
    )
    out = BlockPatcher().apply(text, SetStatus("completed"))
    assert _changed_lines(text, out) == [("status: reading\n", "status: completed\n")]


def test_malformed_volume_entry_raises() -> None:
    with pytest.raises(MalformedField):
        BlockPatcher().apply("```bookLog\nvolume_status:\n  x: done\n```\n", SetVolume(0))
    with pytest.raises(MalformedField):
        BlockPatcher().apply("```bookLog\nvolume_status: {0: completed}\n```\n", SetVolume(1))


def test_negative_volume_index_rejected() -> None:
    with pytest.raises(ValueError):
        SetVolume(-1)


def test_completed_volumes() -> None:
    assert BlockPatcher().completed_volumes(DOC) == [0, 2]


def test_read_book_log() -> None:
    entry = read_book_log(DOC)
    assert entry.media_id == 42
    assert entry.status == ReadingStatus.READING
    assert entry.completed_volumes == (0, 2)


def test_read_book_log_unknown_status_defaults() -> None:
    entry = read_book_log("```bookLog\nmedia_id: 3\nstatus: someday\n```\n")
    assert entry.status == ReadingStatus.PLAN_TO_READ
    assert entry.completed_volumes == ()


def test_read_book_log_requires_media_id() -> None:
    with pytest.raises(FieldNotFound):
        read_book_log("```bookLog\nstatus: reading\n```\n")


def test_map_split_by_blank_line_is_rejected() -> None:
    text = "```bookLog\nmedia_id: 1\nvolume_status:\n  0: completed\n\n  2: completed\n```\n"
    assert read_book_log(text).completed_volumes == (0, 2)
    with pytest.raises(MalformedField):
        BlockPatcher().apply(text, SetVolume(2, completed=False))
    with pytest.raises(MalformedField):
        BlockPatcher().completed_volumes(text)


def test_blank_line_then_closing_fence_is_not_a_split_map() -> None:
    text = "```bookLog\nvolume_status:\n  0: completed\n\n```\n"
    assert BlockPatcher().apply(text, SetVolume(1)) == "```bookLog\nvolume_status:\n  0: completed\n  1: completed\n\n```\n"
