from collections.abc import Iterable, Mapping
from dataclasses import asdict
import logging
from typing import Protocol

from influx_transfer.accumulator import BatchAccumulator
from influx_transfer.mapper import DEFAULT_VERSION_TAG_KEY, map_row
from influx_transfer.schemas import BatchOutcome, DestinationTuple, RowSkipped, RunStatistics, TransferResult, TransferState


logger = logging.getLogger(__name__)


class RowSource(Protocol):
    def fetch_rows(self) -> Iterable[Mapping[str, object]]: ...


class BatchSink(Protocol):
    def verify_connection(self) -> None: ...

    def write(self, batch: list[DestinationTuple]) -> BatchOutcome: ...


class TransferCoordinator:
    def __init__(
        self,
        source: RowSource,
        writer: BatchSink,
        *,
        batch_size: int = 5000,
        version_tag_key: str = DEFAULT_VERSION_TAG_KEY,
    ) -> None:
        self.source = source
        self.writer = writer
        self.version_tag_key = version_tag_key
        self.accumulator = BatchAccumulator(batch_size)
        self.statistics = RunStatistics()
        self.state = TransferState.INIT

    def run(self) -> TransferResult:
        if self.state is not TransferState.INIT:
            raise RuntimeError(f"transfer already ran (state={self.state.value})")

        try:
            self.writer.verify_connection()
            self._transition(TransferState.STREAMING)

            for row in self.source.fetch_rows():
                self.statistics.record_read()
                result = map_row(row, version_tag_key=self.version_tag_key)
                if isinstance(result, RowSkipped):
                    self.statistics.record_skipped()
                    continue

                self.statistics.record_mapped()
                if self.accumulator.add(result.row):
                    self._transition(TransferState.FLUSHING)
                    self._flush()
                    self._transition(TransferState.STREAMING)

            self._transition(TransferState.FINAL_FLUSH)
            if len(self.accumulator):
                self._flush()
        except Exception as exc:
            failed_in = self.state
            self._transition(TransferState.ABORTED)
            # Buffered tuples of an aborted run are never written.
            self.accumulator.drain()
            logger.exception("transfer aborted", extra={"state": failed_in.value, **asdict(self.statistics)})
            return TransferResult(
                state=TransferState.ABORTED,
                statistics=self.statistics,
                error=f"{type(exc).__name__}: {exc}",
            )

        self._transition(TransferState.DONE)
        logger.info("transfer finished", extra=asdict(self.statistics))
        return TransferResult(state=TransferState.DONE, statistics=self.statistics)

    def _flush(self) -> None:
        batch = self.accumulator.drain()
        outcome = self.writer.write(batch)
        self.statistics.record_batch(outcome)

        if outcome.committed:
            logger.info(
                "batch committed",
                extra={
                    "batch_size": outcome.size,
                    "rows_read": self.statistics.rows_read,
                    "rows_committed": self.statistics.rows_committed,
                    "batches_committed": self.statistics.batches_committed,
                },
            )
            return
        logger.error(
            "batch rolled back",
            extra={"batch_size": outcome.size, "attempts": outcome.attempts, "error": outcome.error},
        )

    def _transition(self, state: TransferState) -> None:
        logger.debug("transfer state change", extra={"from_state": self.state.value, "to_state": state.value})
        self.state = state
