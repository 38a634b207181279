import pytest

from catalog_ingest.extraction.sources import SourceText, discover_sources, load_source_text, resolve_sources
from catalog_ingest.utils.error_handler import SourceReadError


def test_text_source_pages_split_on_form_feed(tmp_path):
    path = tmp_path / "catalog_2023_01.txt"
    path.write_text("page one\fpage two\fpage three", encoding="utf-8")

    source = load_source_text(path)

    assert source.page_count == 3
    assert "\f" not in source.text


def test_undecodable_text_is_a_read_error(tmp_path):
    path = tmp_path / "catalog_2023_01.txt"
    path.write_bytes(b"\xff\xfe\x00not text")

    with pytest.raises(SourceReadError):
        load_source_text(path)


def test_missing_file_is_a_read_error(tmp_path):
    with pytest.raises(SourceReadError):
        load_source_text(tmp_path / "absent.pdf")


def test_discovery_is_sorted_and_filtered(tmp_path):
    for name in ("catalog_2024_01.txt", "catalog_2022_01.txt", "notes.md"):
        (tmp_path / name).write_text("x", encoding="utf-8")

    assert [p.name for p in discover_sources(tmp_path, "txt")] == ["catalog_2022_01.txt", "catalog_2024_01.txt"]
    assert resolve_sources([tmp_path / "notes.md"]) == [tmp_path / "notes.md"]


def test_sample_covers_leading_pages():
    source = SourceText(text="a" * 100, page_count=10)

    assert source.sample(2) == "a" * 20
    assert source.sample(10) == source.text
    assert source.sample(50) == source.text
    assert source.sample(0) == ""
