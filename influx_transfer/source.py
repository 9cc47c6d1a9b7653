from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
import logging
import re

from influxdb_client import InfluxDBClient
from influxdb_client.rest import ApiException
from urllib3.exceptions import HTTPError

from influx_transfer.config import Settings
from influx_transfer.mapper import SOURCE_DIMENSION_KEYS


logger = logging.getLogger(__name__)

_DURATION = re.compile(r"^-?(\d+(ns|us|ms|mo|s|m|h|d|w|y))+$")
_RFC3339 = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$")


class SourceUnavailableError(RuntimeError):
    pass


@dataclass(frozen=True)
class SourceQuery:
    bucket: str
    measurement: str = "events"
    field: str = "value"
    version_tag: str = "java"
    range_start: str = "-24h"
    range_stop: str | None = None

    @property
    def group_keys(self) -> Sequence[str]:
        return (*SOURCE_DIMENSION_KEYS, self.version_tag)


def flux_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{escaped}"'


def flux_time(value: str) -> str:
    # Durations (-24h), RFC3339 timestamps or now().
    value = value.strip()
    if value == "now()" or _DURATION.match(value) or _RFC3339.match(value):
        return value
    raise ValueError(f"invalid Flux range bound: {value!r}")


def build_flux_query(query: SourceQuery) -> str:
    if not query.bucket:
        raise ValueError("source bucket is required")

    range_args = f"start: {flux_time(query.range_start)}"
    if query.range_stop:
        range_args += f", stop: {flux_time(query.range_stop)}"
    group_columns = ", ".join(flux_string(key) for key in query.group_keys)

    return "\n".join(
        [
            f"from(bucket: {flux_string(query.bucket)})",
            f"  |> range({range_args})",
            f"  |> filter(fn: (r) => r._measurement == {flux_string(query.measurement)})",
            f"  |> filter(fn: (r) => r._field == {flux_string(query.field)})",
            f"  |> group(columns: [{group_columns}])",
            "  |> sum()",
            '  |> yield(name: "aggregated_by_dimensions")',
        ]
    )


class InfluxSource:
    def __init__(self, client: InfluxDBClient, query: SourceQuery, *, org: str | None = None) -> None:
        self.client = client
        self.query = query
        self.org = org

    @classmethod
    def from_settings(cls, settings: Settings) -> "InfluxSource":
        client = InfluxDBClient(
            url=settings.influx_url,
            token=settings.influx_token,
            org=settings.influx_org,
            timeout=settings.influx_timeout_ms,
        )
        query = SourceQuery(
            bucket=settings.influx_bucket,
            measurement=settings.influx_measurement,
            field=settings.influx_field,
            version_tag=settings.influx_version_tag,
            range_start=settings.range_start,
            range_stop=settings.range_stop,
        )
        return cls(client, query, org=settings.influx_org or None)

    def __enter__(self) -> "InfluxSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()
        logger.debug("source client closed")

    def fetch_rows(self) -> Iterator[Mapping[str, object]]:
        flux = build_flux_query(self.query)
        logger.info("querying source", extra={"bucket": self.query.bucket, "range_start": self.query.range_start})
        try:
            for record in self.client.query_api().query_stream(flux, org=self.org):
                yield record.values
        except (ApiException, HTTPError, OSError) as exc:
            raise SourceUnavailableError(f"source query failed: {exc}") from exc
