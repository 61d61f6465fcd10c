from typing import Callable, Optional, Tuple

from plancost.explain.type import UsedKeyParts
from plancost.stats.source import StatSource


class StatisticsResolver:
    """
    Answers cardinality questions from three sources in fixed priority order:
    manual overrides, then the stats dump, then live-probe (fuzzed) stats.

    The first source with an answer wins. The order is set at construction and
    the resolver holds no mutable state, so one instance can be shared by
    concurrent readers for a whole analysis session.
    """

    def __init__(self, manual: StatSource, dump: StatSource, fuzzed: StatSource):
        self._sources: Tuple[StatSource, StatSource, StatSource] = (manual, dump, fuzzed)

    @property
    def sources(self) -> Tuple[StatSource, StatSource, StatSource]:
        return self._sources

    def estimate_key(
        self,
        table: str,
        key: str,
        used_key_parts: Optional[UsedKeyParts] = None,
    ) -> Optional[float]:
        return self._ask_each(lambda source: source.estimate_key(table, key, used_key_parts))

    def table_count(self, table: str) -> Optional[float]:
        return self._ask_each(lambda source: source.table_count(table))

    def is_fuzzed(self, table: str) -> bool:
        """True when the table's count comes from the fuzzed source."""
        for source in self._sources:
            if source.table_count(table) is not None:
                return source.is_fuzzed(table)
        return False

    def _ask_each(self, question: Callable[[StatSource], Optional[float]]) -> Optional[float]:
        for source in self._sources:
            answer = question(source)
            if answer is not None:
                return answer
        return None
