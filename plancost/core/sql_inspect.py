"""SQL text inspection and index-hint rewriting"""
import re
from dataclasses import dataclass
from typing import Optional

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError

DIALECT = "mysql"

# Words that may follow a table reference and are never its alias
_NON_ALIAS_KEYWORDS = (
    "WHERE", "JOIN", "INNER", "LEFT", "RIGHT", "CROSS", "STRAIGHT_JOIN",
    "NATURAL", "OUTER", "FULL", "ORDER", "GROUP", "HAVING", "LIMIT", "UNION",
    "EXCEPT", "INTERSECT", "FOR", "LOCK", "USE", "FORCE", "IGNORE",
    "PARTITION", "WINDOW", "ON", "USING", "SET", "INTO", "PROCEDURE",
)

_IDENT = r"(?:`[^`]+`|[\w$]+)"

_FROM_RE = re.compile(r"\bFROM\b", re.IGNORECASE)
_FROM_TABLE_RE = re.compile(
    rf"FROM\s+{_IDENT}(?:\s*\.\s*{_IDENT})?"
    rf"(?:\s+(?:AS\s+)?(?!(?:{'|'.join(_NON_ALIAS_KEYWORDS)})\b){_IDENT})?",
    re.IGNORECASE,
)

# Quoted text: strings, double-quoted strings, backtick identifiers
_QUOTED_RE = re.compile(
    r"'(?:[^'\\]|\\.|'')*'"
    r'|"(?:[^"\\]|\\.|"")*"'
    r"|`(?:[^`]|``)*`"
)

# Fallbacks for statements sqlglot cannot parse
_WHERE_RE = re.compile(r"\bWHERE\b", re.IGNORECASE)
_TRIVIAL_WHERE_RE = re.compile(
    r"\bWHERE\s+(?:1\s*=\s*1|TRUE|1)\s*(?=$|;|\b(?:ORDER|GROUP|HAVING|LIMIT)\b)",
    re.IGNORECASE,
)
_ORDER_BY_RE = re.compile(r"\bORDER\s+BY\b", re.IGNORECASE)
_LIMIT_RE = re.compile(r"\bLIMIT\s+(?:\d+\s*,\s*)?(\d+)\b", re.IGNORECASE)


@dataclass(frozen=True)
class StatementShape:
    """Clauses of a statement that decide whether it is a plain scan."""

    has_where: bool
    trivial_where: bool
    has_order_by: bool
    limit: Optional[int]

    @property
    def is_simple_scan(self) -> bool:
        return (not self.has_where or self.trivial_where) and not self.has_order_by


def inspect_statement(sql: str) -> StatementShape:
    """
    Report the WHERE / ORDER BY / LIMIT clauses of a statement.
    Uses sqlglot's MySQL dialect and falls back to keyword patterns when the
    statement does not parse.
    """
    try:
        parsed = sqlglot.parse_one(sql, read=DIALECT)
    except (ParseError, TokenError):
        return _inspect_with_patterns(sql)

    if parsed is None:
        return _inspect_with_patterns(sql)

    # subquery filters and sorts count too; LIMIT only at the top level
    wheres = list(parsed.find_all(exp.Where))
    return StatementShape(
        has_where=bool(wheres),
        trivial_where=bool(wheres) and all(_is_trivially_true(w.this) for w in wheres),
        has_order_by=parsed.find(exp.Order) is not None,
        limit=_literal_limit(parsed.args.get("limit")),
    )


def force_index(sql: str, key: str) -> str:
    """
    Insert FORCE INDEX(`key`) right after the first FROM <table> [alias].
    The rest of the statement is left untouched. Only a FROM outside quotes
    and parentheses counts, so EXTRACT(YEAR FROM col) or 'from' in a string
    is skipped. Statements whose FROM clause does not start with a plain
    table reference come back unchanged.
    """
    masked = _mask_quoted(sql)
    from_match = _top_level_from(masked)
    if from_match is None:
        return sql

    # masking keeps offsets, so the match end indexes the original text
    table_match = _FROM_TABLE_RE.match(masked, from_match.start())
    if table_match is None:
        return sql

    end = table_match.end()
    quoted_key = "`" + key.replace("`", "``") + "`"
    return f"{sql[:end]} FORCE INDEX({quoted_key}){sql[end:]}"


def _mask_quoted(sql: str) -> str:
    """Blank the inside of quoted text, keeping the quotes and every offset."""

    def _blank(m: re.Match) -> str:
        quoted = m.group(0)
        return quoted[0] + " " * (len(quoted) - 2) + quoted[-1]

    return _QUOTED_RE.sub(_blank, sql)


def _top_level_from(masked: str) -> Optional[re.Match]:
    depth = 0
    position = 0
    for match in _FROM_RE.finditer(masked):
        segment = masked[position:match.start()]
        depth += segment.count("(") - segment.count(")")
        position = match.start()
        if depth == 0:
            return match
    return None


def _is_trivially_true(condition: Optional[exp.Expression]) -> bool:
    if isinstance(condition, exp.Paren):
        return _is_trivially_true(condition.this)
    if isinstance(condition, exp.Boolean):
        return bool(condition.this)
    if isinstance(condition, exp.Literal):
        return not condition.is_string and condition.this not in ("0", "0.0")
    if isinstance(condition, exp.EQ):
        left, right = condition.this, condition.expression
        return (
            isinstance(left, exp.Literal)
            and isinstance(right, exp.Literal)
            and left.is_string == right.is_string
            and left.this == right.this
        )
    return False


def _literal_limit(limit_node: Optional[exp.Expression]) -> Optional[int]:
    if limit_node is None:
        return None
    limit_expr = limit_node.expression
    if isinstance(limit_expr, exp.Literal) and not limit_expr.is_string:
        try:
            return int(limit_expr.this)
        except ValueError:
            return None
    return None


def _inspect_with_patterns(sql: str) -> StatementShape:
    masked = _mask_quoted(sql)
    where_count = len(_WHERE_RE.findall(masked))
    trivial_count = len(_TRIVIAL_WHERE_RE.findall(masked))
    limit_match = _LIMIT_RE.search(masked)
    return StatementShape(
        has_where=where_count > 0,
        # every WHERE must be trivial, same as the parsed path
        trivial_where=where_count > 0 and trivial_count == where_count,
        has_order_by=_ORDER_BY_RE.search(masked) is not None,
        limit=int(limit_match.group(1)) if limit_match else None,
    )
