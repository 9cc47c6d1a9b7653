from influx_transfer.schemas import DestinationTuple


class BatchOverflowError(RuntimeError):
    pass


class BatchAccumulator:
    def __init__(self, capacity: int) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ValueError(f"batch capacity must be a positive integer, got {capacity!r}")
        self.capacity = capacity
        self._batch: list[DestinationTuple] = []

    def __len__(self) -> int:
        return len(self._batch)

    @property
    def is_full(self) -> bool:
        return len(self._batch) >= self.capacity

    def add(self, item: DestinationTuple) -> bool:
        if self.is_full:
            raise BatchOverflowError(f"batch already holds {self.capacity} tuples; drain before adding")
        self._batch.append(item)
        return self.is_full

    def drain(self) -> list[DestinationTuple]:
        batch = self._batch
        self._batch = []
        return batch
