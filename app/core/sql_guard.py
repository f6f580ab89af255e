"""Heuristic read-only safety screen for generated SQL"""
import re
from dataclasses import dataclass
from typing import Optional

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from app.config import settings
from app.core.schema_catalog import Schema
from app.core.sql_tokenizer import (
    QUOTED_IDENTIFIER,
    STRING,
    WORD,
    SqlTokenizer,
    cte_names,
    default_tokenizer,
    first_from_table,
    significant,
)
from app.smart_logger import SmartLogger


READ_KEYWORDS = {"SELECT", "WITH"}

# Mutating verbs (DML/DDL/privilege/utility)
FORBIDDEN_KEYWORDS = {
    "INSERT", "UPDATE", "DELETE", "MERGE", "ALTER", "DROP", "TRUNCATE", "CREATE",
    "GRANT", "REVOKE", "COPY", "VACUUM", "CALL", "EXEC", "EXECUTE",
    # SELECT ... INTO creates a table
    "INTO",
}

# Patterns matched against SQL whose literals have been blanked out
DANGEROUS_PATTERNS = [
    (re.compile(r";\s*(DROP|DELETE|TRUNCATE|ALTER|CREATE|GRANT|REVOKE)\b", re.IGNORECASE), "mutating statement after separator"),
    (re.compile(r";\s*\S"), "multiple statements"),
    (re.compile(r"--"), "inline comment"),
    (re.compile(r"/\*"), "block comment"),
    (re.compile(r"\bEXEC(UTE)?\s*\(", re.IGNORECASE), "dynamic execution"),
    (re.compile(r"xp_cmdshell|sp_executesql", re.IGNORECASE), "command execution"),
]

_UNION_SELECT_RE = re.compile(r"\bUNION\s+(?:ALL\s+|DISTINCT\s+)?\(?\s*SELECT\b", re.IGNORECASE)

_FORBIDDEN_NODES = (
    exp.Insert, exp.Update, exp.Delete, exp.Drop, exp.Create, exp.Alter, exp.Merge, exp.Command,
    exp.Into,
)
_QUERY_ROOTS = (exp.Select, exp.Union, exp.Intersect, exp.Except)


@dataclass(frozen=True)
class ScreenResult:
    ok: bool
    reason: str = ""


class SafetyScreen:
    """
    Rejects anything that is not a single read-only statement.

    This is a heuristic filter, not a parser. The read-only privilege of the execution
    role is the real guarantee; the dry run is the authoritative correctness check.
    """

    def __init__(
        self,
        allow_union: bool = False,
        tokenizer: Optional[SqlTokenizer] = None,
        max_join_depth: Optional[int] = None,
        max_subquery_depth: Optional[int] = None,
    ):
        self.allow_union = allow_union
        self.tokenizer = tokenizer or default_tokenizer
        self.max_join_depth = max_join_depth if max_join_depth is not None else settings.max_join_depth
        self.max_subquery_depth = (
            max_subquery_depth if max_subquery_depth is not None else settings.max_subquery_depth
        )

    def screen(self, sql: str, schema: Optional[Schema] = None) -> bool:
        """True when the query may proceed to dry-run validation."""
        return self.check(sql, schema).ok

    def check(self, sql: str, schema: Optional[Schema] = None) -> ScreenResult:
        result = self._check(sql or "", schema)
        if not result.ok:
            SmartLogger.log(
                "WARNING",
                "text2sql.safety.rejected",
                category="text2sql.safety",
                params={"reason": result.reason, "sql": sql},
                max_inline_chars=0,
            )
        return result

    def _check(self, sql: str, schema: Optional[Schema]) -> ScreenResult:
        tokens = self.tokenizer.tokenize(sql.strip())
        sig = significant(tokens)
        if not sig:
            return ScreenResult(False, "empty query")

        if sig[0].kind != WORD or sig[0].upper not in READ_KEYWORDS:
            return ScreenResult(False, f"statement must start with SELECT or WITH, got {sig[0].text!r}")

        masked = self._mask_literals(tokens)
        for pattern, reason in DANGEROUS_PATTERNS:
            if pattern.search(masked):
                return ScreenResult(False, f"dangerous pattern detected: {reason}")

        for tok in sig:
            if tok.kind == WORD and tok.upper in FORBIDDEN_KEYWORDS:
                return ScreenResult(False, f"forbidden keyword: {tok.upper}")

        if not self.allow_union and _UNION_SELECT_RE.search(masked):
            return ScreenResult(False, "UNION SELECT is not allowed")

        if schema is not None:
            table = first_from_table(tokens)
            if (
                table is not None
                and table.lower() not in cte_names(tokens)
                and schema.find_table(table) is None
            ):
                return ScreenResult(False, f"unknown table referenced: {table}")

        return self._check_structure(sql)

    @staticmethod
    def _mask_literals(tokens) -> str:
        """Blank out string literals and quoted identifiers so patterns only see SQL text."""
        parts = []
        for tok in tokens:
            if tok.kind == STRING:
                parts.append("''")
            elif tok.kind == QUOTED_IDENTIFIER:
                parts.append('""')
            else:
                parts.append(tok.text)
        return "".join(parts)

    def _check_structure(self, sql: str) -> ScreenResult:
        try:
            statements = [s for s in sqlglot.parse(sql.strip().rstrip(";"), read="postgres") if s is not None]
        except SqlglotError as exc:
            # Not a rejection: the engine's dry run decides on syntax.
            SmartLogger.log(
                "DEBUG",
                "text2sql.safety.parse_skipped",
                category="text2sql.safety",
                params={"error": str(exc)},
            )
            return ScreenResult(True)

        if len(statements) != 1:
            return ScreenResult(False, "multiple statements")
        parsed = statements[0]
        if not isinstance(parsed, _QUERY_ROOTS):
            return ScreenResult(False, "only SELECT statements are allowed")

        for node in parsed.walk():
            if isinstance(node, _FORBIDDEN_NODES):
                return ScreenResult(False, f"forbidden operation: {type(node).__name__}")

        joins = list(parsed.find_all(exp.Join))
        if len(joins) > self.max_join_depth:
            return ScreenResult(False, f"too many joins: {len(joins)} (max: {self.max_join_depth})")

        depth = self._subquery_depth(parsed)
        if depth > self.max_subquery_depth:
            return ScreenResult(
                False, f"subquery depth exceeds limit: {depth} (max: {self.max_subquery_depth})"
            )
        return ScreenResult(True)

    def _subquery_depth(self, node: exp.Expression) -> int:
        deepest = 0
        for subquery in node.find_all(exp.Subquery):
            if subquery is node:
                continue
            inner = subquery.this
            if isinstance(inner, exp.Expression):
                deepest = max(deepest, 1 + self._subquery_depth(inner))
        return deepest
