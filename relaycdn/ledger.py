from typing import Callable, Iterable

from relaycdn.models import UploadRecord

DEFAULT_HISTORY_CAP = 100


class HistoryLedger:
    """Newest-first, capped list of upload records kept in process memory."""

    def __init__(self, cap: int = DEFAULT_HISTORY_CAP):
        if cap < 1:
            raise ValueError("History cap must be positive")
        self.cap = cap
        self._records: list[UploadRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: UploadRecord) -> None:
        # Insertion order is the read order, no sort on list().
        records = [record, *self._records]
        self._records = records[: self.cap]

    def list(self, limit: int = DEFAULT_HISTORY_CAP) -> list[UploadRecord]:
        safe_limit = max(1, min(limit, self.cap))
        return self._records[:safe_limit]

    def remove_where(self, predicate: Callable[[UploadRecord], bool]) -> int:
        kept = [record for record in self._records if not predicate(record)]
        removed = len(self._records) - len(kept)
        self._records = kept
        return removed

    def remove_urls(self, urls: Iterable[str]) -> int:
        targets = set(urls)
        if not targets:
            return 0
        return self.remove_where(lambda record: record.url in targets)

    def clear(self) -> int:
        removed = len(self._records)
        self._records = []
        return removed
