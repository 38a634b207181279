import json

import pytest

from catalog_ingest.extraction.overrides import EMPTY_OVERRIDES, load_overrides
from catalog_ingest.utils.error_handler import ConfigurationError


def test_packaged_table():
    table = load_overrides()

    assert len(table) == 11
    assert table["AOA2"].control_number == "MATH 5210"
    assert table["C635"].competency_units == 6
    assert table.codes == tuple(sorted(table.codes))


def test_table_is_read_only():
    table = load_overrides()
    with pytest.raises(TypeError):
        table["X999"] = table["AOA2"]


def test_empty_table():
    assert len(EMPTY_OVERRIDES) == 0
    assert EMPTY_OVERRIDES.codes == ()


def test_custom_table(tmp_path):
    path = tmp_path / "overrides.json"
    path.write_text(json.dumps({"D999": {"controlNumber": "DATA 9999", "competencyUnits": 3}}))

    table = load_overrides(path)
    assert list(table) == ["D999"]
    assert table["D999"].competency_units == 3


@pytest.mark.parametrize("content", [
    "not json",
    "[1, 2, 3]",
    json.dumps({"D999": {"controlNumber": "DATA 9999"}}),
    json.dumps({"D999": {"controlNumber": "DATA 9999", "competencyUnits": -1}}),
])
def test_malformed_table(tmp_path, content):
    path = tmp_path / "overrides.json"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_overrides(path)


def test_missing_table(tmp_path):
    with pytest.raises(ConfigurationError):
        load_overrides(tmp_path / "nope.json")
