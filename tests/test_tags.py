import pytest

from booklog.core.tags import canonical_genre, canonical_tag, display_tag, load_translations


def test_bundled_table_loads() -> None:
    table = load_translations()
    assert table["Isekai"] == "異世界"
    assert len(table) > 30


def test_display_tag() -> None:
    assert display_tag("Isekai") == "異世界 (Isekai)"
    assert display_tag("Underwater Basket Weaving") == "Underwater Basket Weaving"


def test_canonical_tag() -> None:
    assert canonical_tag("異世界 (Isekai)") == "Isekai"
    assert canonical_tag("異世界") == "Isekai"
    assert canonical_tag("  Isekai ") == "Isekai"
    assert canonical_tag("Unknown") == "Unknown"


def test_custom_table(tmp_path) -> None:
    path = tmp_path / "tags.yaml"
    path.write_text("Elf: エルフ\nEmpty:\n", encoding="utf-8")
    table = load_translations(str(path))
    assert table == {"Elf": "エルフ"}
    assert display_tag("Elf", table) == "エルフ (Elf)"
    assert canonical_tag("エルフ", table) == "Elf"


def test_missing_table_exits(tmp_path) -> None:
    with pytest.raises(SystemExit):
        load_translations(str(tmp_path / "missing.yaml"))


def test_canonical_genre() -> None:
    assert canonical_genre("fantasy") == "Fantasy"
    assert canonical_genre("SCI-FI") == "Sci-Fi"
    assert canonical_genre("ファンタジー (Fantasy)") == "Fantasy"
    assert canonical_genre("日常") == "Slice of Life"
    assert canonical_genre("Mahou Shoujo") == "Mahou Shoujo"
