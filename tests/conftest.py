from collections.abc import Generator, Iterator, Mapping
from pathlib import Path
import sqlite3

import pytest
from sqlalchemy import Engine, create_engine, func, select, text

from influx_transfer.config import Settings
from influx_transfer.database import engine_scope
from influx_transfer.db_models import AggregatedMeasurement, Base
from influx_transfer.source import SourceUnavailableError
from influx_transfer.writer import BatchWriter


class FakeSource:
    def __init__(self, rows: list[Mapping[str, object]], *, fail_after: int | None = None) -> None:
        self.rows = rows
        self.fail_after = fail_after
        self.fetch_calls = 0

    def fetch_rows(self) -> Iterator[Mapping[str, object]]:
        self.fetch_calls += 1
        for index, row in enumerate(self.rows):
            if self.fail_after is not None and index == self.fail_after:
                raise SourceUnavailableError("source query failed: connection reset by peer")
            yield row


def make_row(index: int, **overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "result": "aggregated_by_dimensions",
        "table": index,
        "company": "acme",
        "project": f"project-{index}",
        "cohort": "2026-q1",
        "user": f"user-{index}",
        "stage": "prod",
        "java": "21",
        "_value": float(index),
    }
    row.update(overrides)
    return row


def count_rows(engine: Engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(AggregatedMeasurement)).scalar_one()


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        app_name="influx-transfer",
        log_level="INFO",
        influx_url="http://localhost:8086",
        influx_token="test-token",
        influx_org="test-org",
        influx_bucket="metrics",
        influx_measurement="events",
        influx_field="value",
        influx_version_tag="java",
        range_start="-24h",
        range_stop=None,
        influx_timeout_ms=1000,
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        postgres_user=None,
        postgres_password=None,
        batch_size=3,
        max_batch_retries=0,
        retry_backoff_seconds=0,
    )


@pytest.fixture()
def engine(test_settings: Settings) -> Generator[Engine, None, None]:
    with engine_scope(test_settings.database_url, create_table=True) as scoped_engine:
        yield scoped_engine


@pytest.fixture()
def writer(engine: Engine) -> BatchWriter:
    return BatchWriter(engine)


def hold_exclusive_lock(path: Path) -> sqlite3.Connection:
    lock = sqlite3.connect(path, isolation_level=None)
    lock.execute("BEGIN EXCLUSIVE")
    return lock


def release_lock(lock: sqlite3.Connection) -> None:
    if lock.in_transaction:
        lock.execute("ROLLBACK")


@pytest.fixture()
def contended_db(tmp_path: Path) -> Generator[tuple[Engine, Path], None, None]:
    path = tmp_path / "contended.db"
    # Short busy timeout so a held lock fails the statement quickly.
    contended_engine = create_engine(f"sqlite:///{path}", connect_args={"timeout": 0.1})
    Base.metadata.create_all(contended_engine)
    yield contended_engine, path
    contended_engine.dispose()


@pytest.fixture()
def unconstrained_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    with engine_scope(f"sqlite:///{tmp_path / 'unconstrained.db'}") as plain_engine:
        with plain_engine.begin() as conn:
            conn.execute(
                text(
                    "CREATE TABLE aggregated_data ("
                    "id INTEGER PRIMARY KEY AUTOINCREMENT, company TEXT NOT NULL, project TEXT NOT NULL, "
                    "cohort TEXT NOT NULL, user TEXT NOT NULL, stage TEXT NOT NULL, "
                    "version_tag TEXT NOT NULL, value FLOAT NOT NULL)"
                )
            )
        yield plain_engine
