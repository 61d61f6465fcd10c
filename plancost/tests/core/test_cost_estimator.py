# python -m pytest plancost/tests/core/test_cost_estimator.py -v

"""Tests for the row-count estimation policy cascade."""

from typing import Dict, List, Optional

import pymysql
import pytest

from plancost.core.cost_estimator import (
    FUZZED_DATA,
    NO_STATS,
    POSSIBLE_KEY_CHECK,
    CostEstimator,
)
from plancost.explain.base import ExplainRunner, MissingKeyError, PlanShapeError
from plancost.explain.mysql import MySQLPlanNormalizer
from plancost.explain.type import EstimateOptions, PlanStep
from plancost.stats.resolver import StatisticsResolver
from plancost.stats.source import StatSource


class RecordingSource(StatSource):
    """StatSource with fixed answers that records every question asked."""

    def __init__(self, counts=None, keys=None, fuzzed=False):
        self.counts: Dict[str, int] = counts or {}
        self.keys: Dict[tuple, int] = keys or {}
        self.fuzzed = fuzzed
        self.calls: List[tuple] = []

    def estimate_key(self, table, key, used_key_parts=None):
        self.calls.append(("estimate_key", table, key, used_key_parts))
        return self.keys.get((table, key))

    def table_count(self, table):
        self.calls.append(("table_count", table))
        return self.counts.get(table)

    def is_fuzzed(self, table):
        self.calls.append(("is_fuzzed", table))
        return self.fuzzed and table in self.counts


class DummyRunner(ExplainRunner):
    """Answers forced-key EXPLAINs from canned query blocks."""

    def __init__(self, blocks=None, missing=(), error: Optional[Exception] = None):
        self.blocks = blocks or {}
        self.missing = set(missing)
        self.error = error
        self.calls: List[str] = []

    def run(self, sql):
        self.calls.append(sql)
        if self.error is not None:
            raise self.error
        for key in self.missing:
            if f"FORCE INDEX(`{key}`)" in sql:
                raise MissingKeyError(key, f"Key '{key}' doesn't exist in table 'orders'")
        for key, block in self.blocks.items():
            if f"FORCE INDEX(`{key}`)" in sql:
                return block
        raise AssertionError(f"unexpected EXPLAIN: {sql}")


def _resolver(source: StatSource) -> StatisticsResolver:
    empty = RecordingSource()
    return StatisticsResolver(manual=empty, dump=source, fuzzed=RecordingSource())


def _estimator(runner: Optional[ExplainRunner] = None) -> CostEstimator:
    return CostEstimator(runner or DummyRunner(), MySQLPlanNormalizer())


def _keyed_block(table: str, key: str) -> dict:
    return {
        "table": {
            "table_name": table,
            "access_type": "ref",
            "key": key,
            "possible_keys": [key],
            "used_key_parts": ["a"],
            "rows_examined_per_scan": 7,
        }
    }


class TestBypassMessages:

    @pytest.mark.parametrize(
        "message",
        [
            "no matching row in const table",
            "No tables used",
            "Impossible WHERE",
            "Select tables optimized away",
            "No matching min/max row",
        ],
    )
    def test_bypass_costs_nothing_and_skips_statistics(self, message):
        source = RecordingSource(counts={"users": 10})
        plan = [PlanStep.bypass(message)]

        result = _estimator().estimate(plan, _resolver(source), "SELECT * FROM users WHERE 1 = 0")

        assert result.cost == 0
        assert result.messages == []
        assert source.calls == []

    def test_impossible_where_scenario(self):
        result = _estimator().estimate(
            [PlanStep.bypass("Impossible WHERE noticed after reading const tables")],
            _resolver(RecordingSource()),
            "SELECT * FROM users WHERE id = 1 AND id = 2",
        )

        assert result.cost == 0
        assert result.messages == []


class TestSimpleTableScan:

    def test_full_scan_uses_table_count(self):
        source = RecordingSource(counts={"orders": 4200})
        plan = [PlanStep(table="orders", access_type="ALL", rows=4100)]

        result = _estimator().estimate(plan, _resolver(source), "SELECT * FROM orders")

        assert result.cost == 4200
        assert result.first_step is plan[0]

    def test_literal_limit_wins_over_table_count(self):
        source = RecordingSource(counts={"orders": 4200})
        plan = [PlanStep(table="orders", access_type="ALL", rows=4100)]

        result = _estimator().estimate(plan, _resolver(source), "SELECT * FROM orders LIMIT 10")

        assert result.cost == 10
        assert ("table_count", "orders") not in source.calls

    def test_trivially_true_where_is_still_a_scan(self):
        source = RecordingSource(counts={"orders": 4200})
        plan = [PlanStep(table="orders", access_type="ALL")]

        result = _estimator().estimate(plan, _resolver(source), "SELECT * FROM orders WHERE 1=1")

        assert result.cost == 4200

    def test_order_by_is_not_a_simple_scan(self):
        source = RecordingSource(counts={"orders": 4200}, keys={("orders", "PRIMARY"): 10})
        plan = [PlanStep(table="orders", access_type="index", key="PRIMARY")]

        result = _estimator().estimate(
            plan, _resolver(source), "SELECT * FROM orders ORDER BY id LIMIT 10"
        )

        assert result.cost == 10
        assert ("estimate_key", "orders", "PRIMARY", None) in source.calls


class TestKeyedLookup:

    def test_const_primary_key_lookup(self):
        source = RecordingSource(counts={"users": 500}, keys={("users", "PRIMARY"): 1})
        plan = [PlanStep(table="users", access_type="const", key="PRIMARY")]

        result = _estimator().estimate(plan, _resolver(source), "SELECT * FROM users WHERE id=5")

        assert result.cost == 1
        assert ("estimate_key", "users", "PRIMARY", None) in source.calls
        assert result.messages == []

    def test_used_key_parts_are_passed_through(self):
        source = RecordingSource(counts={"users": 500}, keys={("users", "idx_ab"): 12})
        plan = [PlanStep(table="users", access_type="ref", key="idx_ab", used_key_parts=["a", "b"])]

        _estimator().estimate(plan, _resolver(source), "SELECT * FROM users WHERE a=1 AND b=2")

        assert ("estimate_key", "users", "idx_ab", ["a", "b"]) in source.calls

    def test_fuzzed_statistics_are_flagged(self):
        fuzzed = RecordingSource(counts={"users": 500}, keys={("users", "PRIMARY"): 1}, fuzzed=True)
        resolver = StatisticsResolver(RecordingSource(), RecordingSource(), fuzzed)
        plan = [PlanStep(table="users", access_type="const", key="PRIMARY")]

        result = _estimator().estimate(plan, resolver, "SELECT * FROM users WHERE id=5")

        assert result.cost == 1
        assert result.messages == [FUZZED_DATA]

    def test_unknown_statistics_yield_zero_with_diagnostic(self):
        plan = [PlanStep(table="users", access_type="const", key="PRIMARY")]

        result = _estimator().estimate(plan, _resolver(RecordingSource()), "SELECT * FROM users WHERE id=5")

        assert result.cost == 0
        assert result.messages == [NO_STATS]


class TestDerivedTables:

    def test_derived_step_is_unwrapped(self):
        source = RecordingSource(counts={"foo": 900}, keys={("foo", "idx_blah"): 30})
        sql = "SELECT COUNT(*) FROM (SELECT 1 FROM foo WHERE blah = 1) t"
        inner = PlanStep(table="foo", access_type="ref", key="idx_blah")
        derived = PlanStep(table="<derived2>", access_type="ALL", rows=30)

        wrapped = _estimator().estimate([derived, inner], _resolver(source), sql)
        unwrapped = _estimator().estimate([inner], _resolver(source), sql)

        assert wrapped.cost == unwrapped.cost == 30
        assert wrapped.first_step is inner

    def test_plan_of_only_derived_steps_is_fatal(self):
        plan = [PlanStep(table="<derived2>", access_type="ALL")]

        with pytest.raises(PlanShapeError):
            _estimator().estimate(
                plan,
                _resolver(RecordingSource()),
                "SELECT * FROM (SELECT 1 AS x FROM foo) t WHERE x = 1",
            )


class TestUnkeyedAccess:

    def test_no_candidates_means_full_scan(self):
        source = RecordingSource(counts={"orders": 1000})
        plan = [PlanStep(table="orders", access_type="ALL", possible_keys=None)]

        result = _estimator().estimate(plan, _resolver(source), "SELECT * FROM orders WHERE note LIKE '%x%'")

        assert result.cost == 1000
        assert POSSIBLE_KEY_CHECK not in result.messages

    def test_candidates_are_retried_with_forced_keys(self):
        source = RecordingSource(counts={"orders": 1000}, keys={("orders", "idx_a"): 50})
        runner = DummyRunner(blocks={"idx_a": _keyed_block("orders", "idx_a")}, missing={"idx_b"})
        plan = [PlanStep(table="orders", access_type="ALL", possible_keys=["idx_a", "idx_b"])]
        sql = "SELECT * FROM orders WHERE a = 1 OR b = 2"

        result = _estimator(runner).estimate(plan, _resolver(source), sql)

        assert result.cost == 50
        assert POSSIBLE_KEY_CHECK in result.messages
        assert runner.calls == [
            "SELECT * FROM orders FORCE INDEX(`idx_a`) WHERE a = 1 OR b = 2",
            "SELECT * FROM orders FORCE INDEX(`idx_b`) WHERE a = 1 OR b = 2",
        ]

    def test_table_count_wins_when_smaller(self):
        source = RecordingSource(counts={"orders": 30}, keys={("orders", "idx_a"): 50})
        runner = DummyRunner(blocks={"idx_a": _keyed_block("orders", "idx_a")})
        plan = [PlanStep(table="orders", access_type="ALL", possible_keys=["idx_a"])]

        result = _estimator(runner).estimate(plan, _resolver(source), "SELECT * FROM orders WHERE a = 1")

        assert result.cost == 30

    def test_forced_retry_does_not_recurse(self):
        source = RecordingSource(counts={"orders": 1000})
        runner = DummyRunner()
        plan = [PlanStep(table="orders", access_type="ALL", possible_keys=["idx_a"])]

        result = _estimator(runner).estimate(
            plan,
            _resolver(source),
            "SELECT * FROM orders FORCE INDEX(`idx_a`) WHERE a = 1",
            EstimateOptions(force_key="idx_a"),
        )

        assert result.cost == 1000
        assert runner.calls == []
        assert POSSIBLE_KEY_CHECK not in result.messages

    def test_forced_plan_still_ambiguous_falls_back_to_count(self):
        source = RecordingSource(counts={"orders": 1000})
        still_unkeyed = {
            "table": {
                "table_name": "orders",
                "access_type": "ALL",
                "possible_keys": ["idx_a"],
                "rows_examined_per_scan": 1000,
            }
        }
        runner = DummyRunner(blocks={"idx_a": still_unkeyed})
        plan = [PlanStep(table="orders", access_type="ALL", possible_keys=["idx_a"])]

        result = _estimator(runner).estimate(plan, _resolver(source), "SELECT * FROM orders WHERE a = 1 OR b = 2")

        assert result.cost == 1000
        assert len(runner.calls) == 1

    def test_empty_candidate_list_checks_count_only(self):
        source = RecordingSource(counts={"orders": 1000})
        runner = DummyRunner()
        plan = [PlanStep(table="orders", access_type="ALL", possible_keys=[])]

        result = _estimator(runner).estimate(plan, _resolver(source), "SELECT * FROM orders WHERE a = 1")

        assert result.cost == 1000
        assert result.messages == [POSSIBLE_KEY_CHECK]
        assert runner.calls == []

    def test_other_explain_failures_propagate(self):
        source = RecordingSource(counts={"orders": 1000})
        error = pymysql.err.OperationalError(2013, "Lost connection to MySQL server during query")
        runner = DummyRunner(error=error)
        plan = [PlanStep(table="orders", access_type="ALL", possible_keys=["idx_a"])]

        with pytest.raises(pymysql.err.OperationalError) as excinfo:
            _estimator(runner).estimate(plan, _resolver(source), "SELECT * FROM orders WHERE a = 1")

        assert excinfo.value is error
