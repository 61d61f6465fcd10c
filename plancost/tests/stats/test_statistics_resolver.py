# python -m pytest plancost/tests/stats/test_statistics_resolver.py -v

"""Tests for prioritized resolution across manual, dump and fuzzed statistics."""

from plancost.stats.resolver import StatisticsResolver
from plancost.stats.source import SnapshotStatSource


def _source(count=None, rows_per=None, fuzzed=False):
    table = {}
    if count is not None:
        table["count"] = count
    if rows_per is not None:
        table["indexes"] = {"idx_a": {"columns": [{"column": "a", "rows_per": rows_per}]}}
    return SnapshotStatSource({"orders": table} if table else {}, fuzzed=fuzzed)


class TestStatisticsResolver:

    def test_manual_value_wins(self):
        resolver = StatisticsResolver(_source(10), _source(20), _source(30, fuzzed=True))

        assert resolver.table_count("orders") == 10

    def test_dump_used_when_manual_declines(self):
        resolver = StatisticsResolver(_source(), _source(20), _source(30, fuzzed=True))

        assert resolver.table_count("orders") == 20

    def test_fuzzed_used_last(self):
        resolver = StatisticsResolver(_source(), _source(), _source(30, fuzzed=True))

        assert resolver.table_count("orders") == 30

    def test_none_when_every_source_declines(self):
        resolver = StatisticsResolver(_source(), _source(), _source(fuzzed=True))

        assert resolver.table_count("orders") is None
        assert resolver.estimate_key("orders", "idx_a") is None

    def test_estimate_key_follows_same_priority(self):
        resolver = StatisticsResolver(_source(), _source(100, rows_per=4), _source(100, rows_per=9, fuzzed=True))

        assert resolver.estimate_key("orders", "idx_a", ["a"]) == 4

    def test_key_falls_through_to_fuzzed(self):
        resolver = StatisticsResolver(_source(100), _source(100), _source(100, rows_per=9, fuzzed=True))

        assert resolver.estimate_key("orders", "idx_a", None) == 9

    def test_zero_is_an_answer(self):
        resolver = StatisticsResolver(_source(0), _source(20), _source())

        assert resolver.table_count("orders") == 0

    def test_is_fuzzed_follows_answering_source(self):
        masked = StatisticsResolver(_source(), _source(20), _source(30, fuzzed=True))
        fuzzed_only = StatisticsResolver(_source(), _source(), _source(30, fuzzed=True))
        unknown = StatisticsResolver(_source(), _source(), _source(fuzzed=True))

        assert masked.is_fuzzed("orders") is False
        assert fuzzed_only.is_fuzzed("orders") is True
        assert unknown.is_fuzzed("orders") is False

    def test_order_is_stable_across_calls(self):
        manual, dump, fuzzed = _source(10), _source(20), _source(30, fuzzed=True)
        resolver = StatisticsResolver(manual, dump, fuzzed)

        answers = [resolver.table_count("orders") for _ in range(3)]

        assert answers == [10, 10, 10]
        assert resolver.sources == (manual, dump, fuzzed)
