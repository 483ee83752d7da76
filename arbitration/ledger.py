"""
Append-only, capped argument list for one side of a case.

The ledger is the only thing allowed to grow a side's arguments or touch a
counter. CaseStore loads it from the Argument rows, asks it for the change
and persists exactly what it returns.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from .errors import ArgumentLimitReached, CounterSuperseded
from .models import ArgumentEntry, Side


class ArgumentLedger:
    def __init__(self, side: Side, entries: Iterable[ArgumentEntry] = (), limit: int = 5):
        self.side = Side(side)
        self.limit = limit
        self._entries: List[ArgumentEntry] = sorted(entries, key=lambda e: e.position)
        for idx, entry in enumerate(self._entries):
            if entry.position != idx:
                raise ValueError(f"Ledger for side {self.side.value} has a gap at position {idx}")

    @property
    def entries(self) -> List[ArgumentEntry]:
        return list(self._entries)

    @property
    def count(self) -> int:
        return len(self._entries)

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)

    @property
    def latest(self) -> Optional[ArgumentEntry]:
        return self._entries[-1] if self._entries else None

    def submit(self, text: str, now: Optional[datetime] = None) -> ArgumentEntry:
        if self.count >= self.limit:
            raise ArgumentLimitReached(self.side.value, self.limit)
        entry = ArgumentEntry(
            position=self.count,
            text=text,
            counter="",
            timestamp=now or datetime.utcnow(),
        )
        self._entries.append(entry)
        return entry

    def patch_latest_counter(self, position: int, text: str, now: Optional[datetime] = None) -> ArgumentEntry:
        latest = self.latest
        if latest is None or latest.position != position or latest.countered_at is not None:
            raise CounterSuperseded(
                self.side.value, position, latest.position if latest else None
            )
        patched = latest.model_copy(update={"counter": text, "countered_at": now or datetime.utcnow()})
        self._entries[-1] = patched
        return patched
