import logging
from collections.abc import Sequence

from sqlalchemy import Connection, Engine, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.sql.dml import Insert

from influx_transfer.db_models import AggregatedMeasurement
from influx_transfer.retry import RetryExhaustedError, run_with_retries
from influx_transfer.schemas import BatchOutcome, DestinationTuple


logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_PG_CONNECTION_CLASS = "08"
_PG_SHUTDOWN_CODES = {"57P01", "57P02", "57P03"}
_SQLITE_CONTENTION_ERRORS = ("SQLITE_BUSY", "SQLITE_LOCKED")


class DestinationUnavailableError(RuntimeError):
    pass


def is_connectivity_error(exc: BaseException) -> bool:
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, (InterfaceError, DisconnectionError)):
        return True
    if not isinstance(exc, OperationalError):
        return False

    # Lock timeouts, deadlocks and cancelled statements carry a server-side code
    # and only fail the batch.
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode.startswith(_PG_CONNECTION_CLASS) or pgcode in _PG_SHUTDOWN_CODES
    sqlite_error = getattr(exc.orig, "sqlite_errorname", None)
    if sqlite_error is not None:
        return not sqlite_error.startswith(_SQLITE_CONTENTION_ERRORS)
    return True


def build_insert(dialect_name: str) -> Insert:
    try:
        insert = _DIALECT_INSERTS[dialect_name]
    except KeyError:
        raise ValueError(f"destination dialect '{dialect_name}' does not support ON CONFLICT DO NOTHING") from None
    return insert(AggregatedMeasurement.__table__).on_conflict_do_nothing()


class BatchWriter:
    def __init__(self, engine: Engine, *, max_retries: int = 0, backoff_seconds: float = 0) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be zero or more, got {max_retries!r}")
        if backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be zero or more, got {backoff_seconds!r}")
        self.engine = engine
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._insert = build_insert(engine.dialect.name)

    def verify_connection(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise DestinationUnavailableError(f"destination unreachable: {exc}") from exc

    def write(self, batch: Sequence[DestinationTuple]) -> BatchOutcome:
        if not batch:
            raise ValueError("cannot write an empty batch")

        try:
            _, attempts = run_with_retries(
                lambda: self._write_once(batch),
                max_retries=self.max_retries,
                backoff_seconds=self.backoff_seconds,
                on_attempt_failure=lambda attempt, exc: self._log_attempt_failure(attempt, exc, len(batch)),
                should_retry=lambda exc: isinstance(exc, SQLAlchemyError),
            )
        except RetryExhaustedError as exc:
            cause = exc.__cause__
            # Connectivity and unclassified errors are fatal to the run.
            if not isinstance(cause, SQLAlchemyError):
                raise cause
            return BatchOutcome(committed=False, size=len(batch), attempts=exc.attempts, error=str(cause))

        return BatchOutcome(committed=True, size=len(batch), attempts=attempts)

    def _write_once(self, batch: Sequence[DestinationTuple]) -> None:
        try:
            with self.engine.begin() as conn:
                self._stage(conn, batch)
        except SQLAlchemyError as exc:
            if is_connectivity_error(exc):
                raise DestinationUnavailableError(f"destination unreachable: {exc}") from exc
            raise

    def _stage(self, conn: Connection, batch: Sequence[DestinationTuple]) -> None:
        conn.execute(self._insert, [row._asdict() for row in batch])

    def _log_attempt_failure(self, attempt: int, exc: Exception, batch_size: int) -> None:
        logger.warning(
            "batch write attempt failed",
            extra={"attempt": attempt, "batch_size": batch_size, "error": str(exc)},
        )
