"""RateStore: Persistence of oracle cycle records.

The oracle hands every finished cycle to a store for later query. Stores are
optional collaborators: the runner logs and ignores any error they raise.

.. code-block:: python

    >>> store = MemoryRateStore(max_records=100)
    >>> store.save_cycle(record)
    >>> store.get_recent_cycles(limit=1)[0].dor_bps
    453
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import asdict, dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class CycleRecord:
    """Flattened record of one oracle cycle.

    :ivar mode: ``"run"`` or ``"dry-run"``.
    :ivar success: Whether the cycle completed.
    :ivar dor_bps: Computed DOR, or None if aggregation was not reached.
    :ivar observations: Observations as dicts.
    :ivar live_count: Observations from live endpoints.
    :ivar fallback_count: Observations using the static fallback.
    :ivar stage: Failing stage, or None on success.
    :ivar error: Failure message, or None on success.
    :ivar warnings: Validation warnings.
    :ivar outcome: PushOutcome or DryRunReport as a dict.
    :ivar created_at: Unix timestamp of the record.
    """

    mode: str
    success: bool
    dor_bps: int | None = None
    observations: list[dict] = field(default_factory=list)
    live_count: int = 0
    fallback_count: int = 0
    stage: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    outcome: dict | None = None
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> CycleRecord:
        """Rebuild a record from ``to_dict`` output."""
        return cls(**data)


class RateStore(ABC):
    """Abstract base class for cycle record stores."""

    @abstractmethod
    def save_cycle(self, record: CycleRecord) -> None:
        """Persist a cycle record.

        :param record: Record to save.
        """
        pass

    @abstractmethod
    def get_recent_cycles(self, limit: int = 10) -> list[CycleRecord]:
        """Return the most recent records, newest first.

        :param limit: Maximum number of records.
        """
        pass


class MemoryRateStore(RateStore):
    """Bounded in-process store.

    :ivar max_records: Oldest records are dropped beyond this count.
    """

    def __init__(self, max_records: int = 1000) -> None:
        self.max_records = max_records
        self._records: deque[CycleRecord] = deque(maxlen=max_records)

    def save_cycle(self, record: CycleRecord) -> None:
        self._records.append(record)

    def get_recent_cycles(self, limit: int = 10) -> list[CycleRecord]:
        return list(reversed(self._records))[:limit]


class JsonlRateStore(RateStore):
    """Append-only JSON lines file, one record per line.

    :ivar path: File the records are appended to.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def save_cycle(self, record: CycleRecord) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as file:
            file.write(json.dumps(record.to_dict()) + "\n")

    def get_recent_cycles(self, limit: int = 10) -> list[CycleRecord]:
        if not self.path.exists():
            return []

        records: list[CycleRecord] = []
        with open(self.path, "r") as file:
            for line_no, line in enumerate(file, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(CycleRecord.from_dict(json.loads(line)))
                except (ValueError, TypeError) as e:
                    logger.warning(f"{self.path}:{line_no}: skipping bad record: {e}")
        return list(reversed(records))[:limit]
