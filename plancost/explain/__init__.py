"""EXPLAIN execution and plan normalization."""

from plancost.explain.base import (
    ExplainExecutionError,
    ExplainRunner,
    MissingKeyError,
    PlanNormalizer,
    PlanShapeError,
)
from plancost.explain.factory import get_plan_normalizer
from plancost.explain.mysql import MySQLExplainRunner, MySQLPlanNormalizer
from plancost.explain.type import CostEstimate, EstimateOptions, Plan, PlanStep

__all__ = [
    "ExplainExecutionError",
    "ExplainRunner",
    "MissingKeyError",
    "PlanNormalizer",
    "PlanShapeError",
    "get_plan_normalizer",
    "MySQLExplainRunner",
    "MySQLPlanNormalizer",
    "CostEstimate",
    "EstimateOptions",
    "Plan",
    "PlanStep",
]
