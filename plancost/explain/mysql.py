"""MySQL-specific EXPLAIN runner and plan normalizer."""

import json
import re
from typing import Any, Dict, Optional

import pymysql

from plancost.explain.base import (
    ExplainExecutionError,
    ExplainRunner,
    MissingKeyError,
    PlanNormalizer,
    PlanShapeError,
)
from plancost.explain.type import Plan, PlanStep
from plancost.smart_logger import SmartLogger

# ER_KEY_DOES_NOT_EXITS
MISSING_KEY_ERRNO = 1176
_MISSING_KEY_RE = re.compile(r"Key '?(.+?)'? doesn't exist in table")


class MySQLExplainRunner(ExplainRunner):
    """Runs EXPLAIN FORMAT=JSON through a PyMySQL (DB-API) connection."""

    def __init__(self, conn: Any):
        self.conn = conn

    def run(self, sql: str) -> Dict[str, Any]:
        explain_sql = self._build_explain_sql(sql)

        try:
            with self.conn.cursor() as cursor:
                cursor.execute(explain_sql)
                row = cursor.fetchone()
        except pymysql.MySQLError as exc:
            key = self._missing_key(exc)
            if key is not None:
                raise MissingKeyError(key, str(exc)) from exc
            SmartLogger.log(
                "ERROR",
                "explain.mysql.run.error",
                category="explain.mysql",
                params={"sql": sql, "error": str(exc)},
            )
            raise

        if not row:
            raise ExplainExecutionError("MySQL EXPLAIN returned no rows")

        payload = row.get("EXPLAIN") if isinstance(row, dict) else row[0]
        plan_json = self._normalize_plan_payload(payload)
        query_block = plan_json.get("query_block") if isinstance(plan_json, dict) else None
        if not isinstance(query_block, dict):
            raise ExplainExecutionError("MySQL EXPLAIN payload has no query_block")
        return query_block

    @staticmethod
    def _build_explain_sql(sql: str) -> str:
        return f"EXPLAIN FORMAT=JSON {sql.strip().rstrip(';')}"

    @staticmethod
    def _normalize_plan_payload(payload: Any) -> Any:
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8")
        if isinstance(payload, str):
            try:
                return json.loads(payload)
            except json.JSONDecodeError as exc:
                raise ExplainExecutionError(f"EXPLAIN payload is not JSON: {exc}") from exc
        return payload

    @staticmethod
    def _missing_key(exc: pymysql.MySQLError) -> Optional[str]:
        message = str(exc.args[1]) if len(exc.args) > 1 else str(exc)
        match = _MISSING_KEY_RE.search(message)
        if match:
            return match.group(1)
        if exc.args and exc.args[0] == MISSING_KEY_ERRNO:
            return ""
        return None


class MySQLPlanNormalizer(PlanNormalizer):
    """Flattens MySQL's EXPLAIN FORMAT=JSON query_block into plan steps."""

    # sort and DISTINCT wrappers around the real join
    WRAPPER_KEYS = ("ordering_operation", "duplicates_removal")

    def normalize(self, query_block: Dict[str, Any]) -> Plan:
        if not isinstance(query_block, dict):
            raise PlanShapeError(f"Expected an EXPLAIN node, got {type(query_block).__name__}")

        for wrapper in self.WRAPPER_KEYS:
            if query_block.get(wrapper):
                return self.normalize(query_block[wrapper])

        nested_loop = query_block.get("nested_loop")
        table = query_block.get("table")

        if not nested_loop and not table:
            if "message" in query_block:
                return [PlanStep.bypass(query_block["message"])]
            raise PlanShapeError(
                f"Unsupported EXPLAIN node with keys: {', '.join(sorted(query_block))}"
            )

        if not nested_loop:
            nested_loop = [{"table": table}]

        return [self._transform_table(entry) for entry in nested_loop]

    @staticmethod
    def _transform_table(entry: Dict[str, Any]) -> PlanStep:
        t = entry.get("table") if isinstance(entry, dict) else None
        if not isinstance(t, dict):
            raise PlanShapeError("Join list entry has no table access")

        key = t.get("key")
        possible_keys = t.get("possible_keys")
        if possible_keys is not None and possible_keys == [key]:
            possible_keys = None

        return PlanStep(
            table=t.get("table_name"),
            access_type=t.get("access_type"),
            key=key,
            used_key_parts=t.get("used_key_parts") or None,
            rows=_to_int(t.get("rows_examined_per_scan")),
            filtered=_to_float(t.get("filtered")),
            possible_keys=list(possible_keys) if possible_keys is not None else None,
            using_index=True if t.get("using_index") else None,
        )


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
