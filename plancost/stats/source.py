"""
Statistics sources.

A StatSource answers two cardinality questions for one statistics origin and
returns None when it has no data. SnapshotStatSource serves a JSON snapshot:

    {
      "users": {
        "count": 1000,
        "fuzzed": false,
        "indexes": {
          "PRIMARY":   {"unique": true, "columns": [{"column": "id", "rows_per": 1}]},
          "idx_email": {"columns": [{"column": "email", "rows_per": "2%"}]}
        }
      }
    }

rows_per is rows matched per distinct key prefix: an absolute count, or a
percentage of the table count.
"""

import json
import math
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from plancost.explain.type import UsedKeyParts

_PERCENT_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*%\s*$")


class StatsSnapshotError(Exception):
    """Raised when a statistics snapshot cannot be read or validated"""
    pass


class StatSource(ABC):
    """Read-only view over one statistics origin."""

    @abstractmethod
    def estimate_key(
        self,
        table: str,
        key: str,
        used_key_parts: Optional[UsedKeyParts] = None,
    ) -> Optional[float]:
        """Rows examined by a lookup on `key`, or None when unknown."""
        pass

    @abstractmethod
    def table_count(self, table: str) -> Optional[float]:
        """Row count of `table`, or None when unknown."""
        pass

    @abstractmethod
    def is_fuzzed(self, table: str) -> bool:
        """True when this source's numbers for `table` came from live probing."""
        pass


class IndexColumnStats(BaseModel):
    column: str
    rows_per: Union[int, str] = Field(..., description="rows per key prefix, or 'N%' of count")

    @field_validator("rows_per")
    @classmethod
    def _check_rows_per(cls, value: Union[int, str]) -> Union[int, str]:
        if isinstance(value, int):
            if value < 0:
                raise ValueError("rows_per must be non-negative")
            return value
        if not _PERCENT_RE.match(value):
            raise ValueError(f"rows_per must be an integer or a percentage, got {value!r}")
        return value.strip()


class IndexStats(BaseModel):
    unique: bool = False
    columns: List[IndexColumnStats] = Field(default_factory=list)


class TableStatsSnapshot(BaseModel):
    count: Optional[int] = Field(default=None, ge=0)
    fuzzed: bool = False
    indexes: Dict[str, IndexStats] = Field(default_factory=dict)


StatsSnapshot = Dict[str, TableStatsSnapshot]

_SNAPSHOT_ADAPTER = TypeAdapter(StatsSnapshot)


def parse_snapshot(raw: Any) -> StatsSnapshot:
    """Validate a decoded snapshot (table name -> stats)."""
    if raw is None:
        return {}
    try:
        return _SNAPSHOT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise StatsSnapshotError(f"Invalid statistics snapshot: {exc}") from exc


def load_snapshot(path: Optional[str]) -> StatsSnapshot:
    """Read a JSON snapshot file. No path configured means an empty snapshot."""
    if not path:
        return {}

    snapshot_path = Path(path)
    try:
        text = snapshot_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StatsSnapshotError(f"Cannot read statistics snapshot {path}: {exc}") from exc

    if not text.strip():
        return {}

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StatsSnapshotError(f"Statistics snapshot {path} is not JSON: {exc}") from exc

    return parse_snapshot(raw)


class SnapshotStatSource(StatSource):
    """StatSource over an in-memory snapshot. Never mutated after construction."""

    def __init__(self, snapshot: Optional[Dict[str, Any]] = None, *, fuzzed: bool = False):
        self.tables: StatsSnapshot = parse_snapshot(snapshot or {})
        self.fuzzed = fuzzed

    @classmethod
    def from_file(cls, path: Optional[str], *, fuzzed: bool = False) -> "SnapshotStatSource":
        source = cls(fuzzed=fuzzed)
        source.tables = load_snapshot(path)
        return source

    def table_count(self, table: str) -> Optional[float]:
        stats = self.tables.get(table)
        if stats is None:
            return None
        return stats.count

    def estimate_key(
        self,
        table: str,
        key: str,
        used_key_parts: Optional[UsedKeyParts] = None,
    ) -> Optional[float]:
        stats = self.tables.get(table)
        if stats is None:
            return None

        index = stats.indexes.get(key)
        if index is None or not index.columns:
            return None

        part = self._pick_column(index, used_key_parts)
        if part is None:
            return None

        return self._rows_per(part.rows_per, stats.count)

    def is_fuzzed(self, table: str) -> bool:
        stats = self.tables.get(table)
        if stats is None:
            return False
        return self.fuzzed or stats.fuzzed

    @staticmethod
    def _pick_column(
        index: IndexStats,
        used_key_parts: Optional[UsedKeyParts],
    ) -> Optional[IndexColumnStats]:
        if used_key_parts is None:
            return index.columns[-1]

        if isinstance(used_key_parts, int):
            position = min(max(used_key_parts, 1), len(index.columns))
            return index.columns[position - 1]

        if not used_key_parts:
            return index.columns[-1]

        last_used = used_key_parts[-1]
        for column in index.columns:
            if column.column == last_used:
                return column
        return None

    @staticmethod
    def _rows_per(rows_per: Union[int, str], count: Optional[int]) -> Optional[float]:
        if isinstance(rows_per, int):
            return rows_per

        if count is None:
            return None

        percent = float(_PERCENT_RE.match(rows_per).group(1))
        return max(1, math.ceil(count * percent / 100.0))
