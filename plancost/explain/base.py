"""Base classes and interfaces for EXPLAIN runners and plan normalizers."""

from abc import ABC, abstractmethod
from typing import Any, Dict

from plancost.explain.type import Plan


class ExplainExecutionError(Exception):
    """Raised when EXPLAIN produced no usable plan"""
    pass


class MissingKeyError(ExplainExecutionError):
    """Raised when a forced index does not exist on the target table"""

    def __init__(self, key: str, message: str):
        super().__init__(message)
        self.key = key


class PlanShapeError(Exception):
    """Raised when an EXPLAIN tree has a shape the normalizer does not cover"""
    pass


class ExplainRunner(ABC):
    """Executes EXPLAIN against a live connection."""

    @abstractmethod
    def run(self, sql: str) -> Dict[str, Any]:
        """Run EXPLAIN for the statement and return its top-level query block.

        Args:
            sql: Statement to explain.

        Returns:
            The planner's parsed query block.

        Raises:
            MissingKeyError: A forced index hint names a key the table lacks.
        """
        pass


class PlanNormalizer(ABC):
    """Turns a database-specific EXPLAIN tree into an ordered list of PlanStep."""

    @abstractmethod
    def normalize(self, query_block: Dict[str, Any]) -> Plan:
        """Flatten the query block into plan steps in join order.

        Raises:
            PlanShapeError: The tree has a shape this normalizer does not cover.
        """
        pass
