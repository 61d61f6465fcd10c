"""
Row-count estimation over a normalized EXPLAIN plan.

The estimate is decided by the first plan step through an ordered cascade of
policies; the first that applies wins:

1. planner bypass message            -> 0, no statistics lookup
2. single-step plain scan            -> LIMIT literal, else table count
3. derived table first               -> drop it and estimate the rest
4. fuzzed statistics                 -> adds "fuzzed_data", keeps going
5. chosen key                        -> key estimate
6. no key, no candidate keys         -> table count
7. no key, candidate keys            -> min(table count, forced-key estimates)

Policy 7 re-runs EXPLAIN once per candidate with a FORCE INDEX hint. Retries
carry options.force_key and never retry again.
"""

import re
from typing import List, Optional

from plancost.core.sql_inspect import force_index, inspect_statement
from plancost.explain.base import ExplainRunner, MissingKeyError, PlanNormalizer, PlanShapeError
from plancost.explain.type import CostEstimate, EstimateOptions, Plan, PlanStep
from plancost.smart_logger import SmartLogger
from plancost.stats.resolver import StatisticsResolver

# Planner decisions that touch no rows
BYPASS_PATTERNS = [
    re.compile(r"no matching row in const table"),
    re.compile(r"No tables used"),
    re.compile(r"Impossible WHERE"),
    re.compile(r"Select tables optimized away"),
    re.compile(r"No matching min/max row"),
]

DERIVED_TABLE_RE = re.compile(r"<derived.*?>")

FUZZED_DATA = "fuzzed_data"
POSSIBLE_KEY_CHECK = "possible_key_check"
NO_STATS = "no_stats"

_CATEGORY = "cost_estimator"


class CostEstimator:
    """Estimates rows examined for a plan. Holds no per-call state."""

    def __init__(self, runner: ExplainRunner, normalizer: PlanNormalizer):
        self.runner = runner
        self.normalizer = normalizer

    def estimate(
        self,
        plan: Plan,
        resolver: StatisticsResolver,
        sql: str,
        options: EstimateOptions = EstimateOptions(),
    ) -> CostEstimate:
        if not plan:
            raise PlanShapeError("Plan has no steps to estimate")

        first = plan[0]

        if self._is_bypass(first):
            self._trace("bypass", first, message=first.message)
            return CostEstimate(cost=0, first_step=first)

        if len(plan) == 1:
            shape = inspect_statement(sql)
            if shape.is_simple_scan:
                if shape.limit is not None:
                    self._trace("simple_scan.limit", first, limit=shape.limit)
                    return CostEstimate(cost=shape.limit, first_step=first)
                self._trace("simple_scan.count", first)
                return self._result(resolver.table_count(first.table), first, [])

        if first.table and DERIVED_TABLE_RE.search(first.table):
            # select count(*) from (select 1 from foo where ...) t
            self._trace("derived", first)
            return self.estimate(plan[1:], resolver, sql, options)

        messages: List[str] = []
        if resolver.is_fuzzed(first.table):
            messages.append(FUZZED_DATA)

        if first.key:
            self._trace("keyed", first, key=first.key)
            cost = resolver.estimate_key(first.table, first.key, first.used_key_parts)
            return self._result(cost, first, messages)

        if first.possible_keys is None:
            # nothing to choose from: the scan is unavoidable
            self._trace("full_scan", first)
            return self._result(resolver.table_count(first.table), first, messages)

        if options.force_key:
            # forced key was still not used, seen with OR conditions
            self._trace("forced_key_unused", first, force_key=options.force_key)
            return self._result(resolver.table_count(first.table), first, messages)

        messages.append(POSSIBLE_KEY_CHECK)
        possibilities = [resolver.table_count(first.table)]
        for key in first.possible_keys:
            possibilities.append(self._estimate_with_key(resolver, sql, options, key))

        answered = [p for p in possibilities if p is not None]
        cost = min(answered) if answered else None
        self._trace("possible_key_check", first, candidates=first.possible_keys, cost=cost)
        return self._result(cost, first, messages)

    def _estimate_with_key(
        self,
        resolver: StatisticsResolver,
        sql: str,
        options: EstimateOptions,
        key: str,
    ) -> Optional[float]:
        forced_sql = force_index(sql, key)
        if forced_sql == sql:
            SmartLogger.log(
                "WARNING",
                "cost_estimator.force_index.no_table",
                category=_CATEGORY,
                params={"sql": sql, "key": key},
            )

        try:
            plan = self.normalizer.normalize(self.runner.run(forced_sql))
        except MissingKeyError as exc:
            SmartLogger.log(
                "INFO",
                "cost_estimator.force_index.missing_key",
                category=_CATEGORY,
                params={"key": key, "error": str(exc)},
            )
            return None

        forced = self.estimate(plan, resolver, forced_sql, options.with_force_key(key))
        if NO_STATS in forced.messages:
            return None
        return forced.cost

    @staticmethod
    def _is_bypass(step: PlanStep) -> bool:
        if not step.message:
            return False
        return any(pattern.search(step.message) for pattern in BYPASS_PATTERNS)

    @staticmethod
    def _result(cost: Optional[float], step: PlanStep, messages: List[str]) -> CostEstimate:
        if cost is None:
            # every statistics source declined
            return CostEstimate(cost=0, first_step=step, messages=messages + [NO_STATS])
        return CostEstimate(cost=max(cost, 0), first_step=step, messages=messages)

    @staticmethod
    def _trace(policy: str, step: PlanStep, **params) -> None:
        SmartLogger.log(
            "DEBUG",
            f"cost_estimator.policy.{policy}",
            category=_CATEGORY,
            params={"table": step.table, **params},
        )
