from collections.abc import Mapping
from decimal import Decimal
import logging
import math

from influx_transfer.schemas import DestinationTuple, MapResult, RowMapped, RowSkipped


logger = logging.getLogger(__name__)

SOURCE_DIMENSION_KEYS = ("company", "project", "cohort", "user", "stage")
DEFAULT_VERSION_TAG_KEY = "java"
MEASURE_KEY = "_value"
DEFAULT_MEASURE = 0.0


def coerce_dimension(value: object) -> str:
    # Absent tags become an empty string instead of skipping the row.
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def coerce_measure(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return DEFAULT_MEASURE
    measure = float(value)
    if not math.isfinite(measure):
        return DEFAULT_MEASURE
    return measure


def map_row(row: Mapping[str, object], *, version_tag_key: str = DEFAULT_VERSION_TAG_KEY) -> MapResult:
    try:
        dimensions = [coerce_dimension(row.get(key)) for key in SOURCE_DIMENSION_KEYS]
        version_tag = coerce_dimension(row.get(version_tag_key))
        value = coerce_measure(row.get(MEASURE_KEY))
    except Exception as exc:
        reason = f"{type(exc).__name__}: {exc}"
        logger.warning("skipping unreadable source row", extra={"reason": reason})
        return RowSkipped(reason=reason)

    return RowMapped(DestinationTuple(*dimensions, version_tag, value))
