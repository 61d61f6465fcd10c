"""Session wiring: connection, statistics and estimator for one analysis run"""
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Tuple

import pymysql

from plancost.config import Settings
from plancost.core.cost_estimator import CostEstimator
from plancost.explain.base import ExplainRunner, PlanNormalizer
from plancost.explain.factory import get_plan_normalizer
from plancost.explain.mysql import MySQLExplainRunner
from plancost.explain.type import CostEstimate
from plancost.smart_logger import SmartLogger
from plancost.stats.resolver import StatisticsResolver
from plancost.stats.source import SnapshotStatSource


def connect(settings: Settings) -> Any:
    """Open the target database connection EXPLAIN runs against."""
    return pymysql.connect(
        host=settings.target_db_host,
        port=int(settings.target_db_port),
        user=settings.target_db_user,
        password=settings.target_db_password,
        database=settings.target_db_name or None,
        read_timeout=settings.sql_timeout_seconds,
        autocommit=True,
    )


def build_resolver(settings: Settings) -> StatisticsResolver:
    """Load the three statistics snapshots in resolution priority order."""
    resolver = StatisticsResolver(
        manual=SnapshotStatSource.from_file(settings.manual_stats_path),
        dump=SnapshotStatSource.from_file(settings.dump_stats_path),
        fuzzed=SnapshotStatSource.from_file(settings.fuzzed_stats_path, fuzzed=True),
    )
    SmartLogger.log(
        "INFO",
        "deps.build_resolver.done",
        category="deps",
        params={
            "manual": len(resolver.sources[0].tables),
            "dump": len(resolver.sources[1].tables),
            "fuzzed": len(resolver.sources[2].tables),
        },
    )
    return resolver


@dataclass(frozen=True)
class EstimationContext:
    """
    Everything one analysis session needs, built once and reused for every
    statement. The resolver is only read, so contexts may be shared across
    threads as long as nothing mutates the snapshots.
    """

    runner: ExplainRunner
    normalizer: PlanNormalizer
    resolver: StatisticsResolver

    @property
    def estimator(self) -> CostEstimator:
        return CostEstimator(self.runner, self.normalizer)

    def estimate(self, sql: str) -> CostEstimate:
        plan = self.normalizer.normalize(self.runner.run(sql))
        result = self.estimator.estimate(plan, self.resolver, sql)
        SmartLogger.log(
            "INFO",
            "deps.estimate.done",
            category="deps",
            params={"sql": sql, "cost": result.cost, "messages": result.messages},
        )
        return result

    def estimate_many(self, statements: Iterable[str]) -> Iterator[Tuple[str, CostEstimate]]:
        for sql in statements:
            yield sql, self.estimate(sql)


def build_context(settings: Settings, conn: Any) -> EstimationContext:
    return EstimationContext(
        runner=MySQLExplainRunner(conn),
        normalizer=get_plan_normalizer(settings.target_db_type),
        resolver=build_resolver(settings),
    )
