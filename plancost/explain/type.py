from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Union

UsedKeyParts = Union[int, List[str]]


@dataclass
class PlanStep:
    """One table access (or planner bypass) in a normalized plan."""

    table: Optional[str] = None
    access_type: Optional[str] = None
    key: Optional[str] = None
    used_key_parts: Optional[UsedKeyParts] = None
    rows: Optional[int] = None
    filtered: Optional[float] = None
    # None means the planner listed no candidates at all, distinct from []
    possible_keys: Optional[List[str]] = None
    using_index: Optional[bool] = None
    message: Optional[str] = None

    @classmethod
    def bypass(cls, message: Optional[str]) -> "PlanStep":
        return cls(message=message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


Plan = List[PlanStep]


@dataclass(frozen=True)
class EstimateOptions:
    """Per-call estimation options. force_key is only set by forced-key retries."""

    force_key: Optional[str] = None

    def with_force_key(self, key: str) -> "EstimateOptions":
        return replace(self, force_key=key)


@dataclass
class CostEstimate:
    """Estimated rows examined for one statement, with diagnostics."""

    cost: float
    first_step: PlanStep
    messages: List[str] = field(default_factory=list)

    def to_log(self) -> str:
        step = self.first_step
        possible = ",".join(step.possible_keys) if step.possible_keys else ""
        return (
            f"possible: '{possible}', "
            f"rows: {_blank(step.rows)}, "
            f"filtered: {_blank(step.filtered)}, "
            f"cost: {self.cost},"
            f"'{_blank(step.message)}'"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.first_step.to_dict(),
            "cost": self.cost,
            "messages": list(self.messages),
        }


def _blank(value: Any) -> str:
    return "" if value is None else str(value)
