"""Cardinality statistics sources and their prioritized resolver."""

from plancost.stats.resolver import StatisticsResolver
from plancost.stats.source import (
    SnapshotStatSource,
    StatSource,
    StatsSnapshotError,
    load_snapshot,
)

__all__ = [
    "StatisticsResolver",
    "SnapshotStatSource",
    "StatSource",
    "StatsSnapshotError",
    "load_snapshot",
]
