"""Dialect lookup for plan normalizers."""

from typing import Dict, Type

from plancost.explain.base import PlanNormalizer
from plancost.explain.mysql import MySQLPlanNormalizer

# MariaDB emits the same EXPLAIN FORMAT=JSON shapes handled here
_NORMALIZERS: Dict[str, Type[PlanNormalizer]] = {
    "mysql": MySQLPlanNormalizer,
    "mariadb": MySQLPlanNormalizer,
}


def get_plan_normalizer(db_type: str) -> PlanNormalizer:
    """Return a normalizer for `db_type` (case-insensitive).

    Raises:
        NotImplementedError: no normalizer is registered for the dialect.
    """
    normalizer_class = _NORMALIZERS.get(db_type.lower().strip())
    if normalizer_class is None:
        raise NotImplementedError(
            f"Database type '{db_type}' is not supported. "
            f"Supported types: {', '.join(sorted(_NORMALIZERS))}"
        )
    return normalizer_class()
