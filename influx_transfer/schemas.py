from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple


DIMENSION_COLUMNS = ("company", "project", "cohort", "user", "stage", "version_tag")


class DestinationTuple(NamedTuple):
    company: str
    project: str
    cohort: str
    user: str
    stage: str
    version_tag: str
    value: float


@dataclass(frozen=True)
class RowMapped:
    row: DestinationTuple


@dataclass(frozen=True)
class RowSkipped:
    reason: str


MapResult = RowMapped | RowSkipped


@dataclass(frozen=True)
class BatchOutcome:
    committed: bool
    size: int
    attempts: int = 1
    error: str | None = None


class TransferState(str, Enum):
    INIT = "init"
    STREAMING = "streaming"
    FLUSHING = "flushing"
    FINAL_FLUSH = "final_flush"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class RunStatistics:
    rows_read: int = 0
    rows_mapped: int = 0
    rows_skipped: int = 0
    # Includes tuples the destination discarded as duplicates.
    rows_committed: int = 0
    rows_lost: int = 0
    batches_committed: int = 0
    batches_rolled_back: int = 0

    def record_read(self) -> None:
        self.rows_read += 1

    def record_mapped(self) -> None:
        self.rows_mapped += 1

    def record_skipped(self) -> None:
        self.rows_skipped += 1

    def record_batch(self, outcome: BatchOutcome) -> None:
        if outcome.committed:
            self.batches_committed += 1
            self.rows_committed += outcome.size
        else:
            self.batches_rolled_back += 1
            self.rows_lost += outcome.size


@dataclass(frozen=True)
class TransferResult:
    state: TransferState
    statistics: RunStatistics
    error: str | None = None
