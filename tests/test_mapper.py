from decimal import Decimal

from influxdb_client.client.flux_table import FluxRecord

from influx_transfer.mapper import coerce_measure, map_row
from influx_transfer.schemas import DestinationTuple, RowMapped, RowSkipped


class UnreadableRow(dict):
    def get(self, key, default=None):
        raise TypeError("field access failed")


def test_map_row_builds_destination_tuple() -> None:
    row = {
        "company": "acme",
        "project": "billing",
        "cohort": "2026-q1",
        "user": "u-1",
        "stage": "prod",
        "java": "21",
        "_value": 12,
    }

    result = map_row(row)

    assert result == RowMapped(DestinationTuple("acme", "billing", "2026-q1", "u-1", "prod", "21", 12.0))
    assert isinstance(result.row.value, float)


def test_map_row_accepts_flux_record_values() -> None:
    record = FluxRecord(table=0, values={"company": "acme", "java": "17", "_value": 2.5})

    result = map_row(record.values)

    assert isinstance(result, RowMapped)
    assert result.row.company == "acme"
    assert result.row.version_tag == "17"
    assert result.row.value == 2.5


def test_missing_dimensions_become_empty_strings() -> None:
    result = map_row({"company": "acme", "stage": None, "_value": 1.0})

    assert isinstance(result, RowMapped)
    assert result.row.project == ""
    assert result.row.stage == ""
    assert result.row.version_tag == ""


def test_non_string_dimensions_are_converted_to_text() -> None:
    result = map_row({"company": 42, "java": 21, "_value": 1})

    assert isinstance(result, RowMapped)
    assert result.row.company == "42"
    assert result.row.version_tag == "21"


def test_custom_version_tag_key() -> None:
    result = map_row({"runtime": "python3.12", "java": "21", "_value": 1}, version_tag_key="runtime")

    assert isinstance(result, RowMapped)
    assert result.row.version_tag == "python3.12"


def test_non_numeric_measure_defaults_to_zero() -> None:
    result = map_row({"company": "acme", "_value": "N/A"})

    assert isinstance(result, RowMapped)
    assert result.row.value == 0.0


def test_missing_measure_defaults_to_zero() -> None:
    result = map_row({"company": "acme"})

    assert isinstance(result, RowMapped)
    assert result.row.value == 0.0


def test_coerce_measure_edge_values() -> None:
    assert coerce_measure(Decimal("1.25")) == 1.25
    assert coerce_measure(True) == 0.0
    assert coerce_measure(float("nan")) == 0.0
    assert coerce_measure(float("-inf")) == 0.0
    assert coerce_measure("3.5") == 0.0
    assert coerce_measure(None) == 0.0


def test_unreadable_row_is_skipped_not_raised() -> None:
    result = map_row(UnreadableRow(company="acme"))

    assert isinstance(result, RowSkipped)
    assert "field access failed" in result.reason
