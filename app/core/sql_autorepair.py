"""
Schema-aware SQL auto-repair.

Purpose:
- Heal the most common failure of generated SQL: a reference to a column or table that does
  not exist (typos, snake_case vs camelCase, wrong letter case).
- Work only from the engine's error text and the live schema; no LLM round trip.

Matching (first rule that fires wins, per candidate, in schema order):
1. case-insensitive exact match
2. snake_case -> camelCase of the bad identifier equals the candidate
3. camelCase -> snake_case of the candidate equals the bad identifier
4. smallest edit distance, accepted only when <= max_distance (3)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from app.core.identifier_quoter import IdentifierQuoter
from app.core.schema_catalog import Schema
from app.core.sql_tokenizer import (
    QUOTED_IDENTIFIER,
    WORD,
    SqlTokenizer,
    default_tokenizer,
    first_from_table,
    unquote_identifier,
)
from app.smart_logger import SmartLogger

UNKNOWN_COLUMN = "unknown_column"
UNKNOWN_TABLE = "unknown_table"
DUPLICATE_KEYWORD = "duplicate_keyword"

MAX_EDIT_DISTANCE = 3

_IDENT = r'(?:"[^"]+"|[^\s"]+)'
_RE_UNKNOWN_COLUMN = re.compile(
    rf"\bcolumn\s+(?P<ident>{_IDENT}(?:\.{_IDENT})*)",
    flags=re.IGNORECASE,
)
_RE_UNKNOWN_RELATION = re.compile(
    rf"\b(?:relation|table)\s+(?P<ident>{_IDENT}(?:\.{_IDENT})*)",
    flags=re.IGNORECASE,
)
_RE_DUPLICATE_KEYWORD = re.compile(r"\b(SELECT|FROM|WHERE|ORDER|BY)\s+\1\b", flags=re.IGNORECASE)


@dataclass(frozen=True)
class RepairResult:
    sql: str
    kind: str
    original: str = ""
    replacement: str = ""
    score: int = 0


def levenshtein_distance(a: str, b: str) -> int:
    """Classic insert/delete/substitute edit distance, case-insensitive."""
    s = (a or "").lower()
    t = (b or "").lower()
    m, n = len(s), len(t)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(m + 1):
        dp[i][0] = i
    for j in range(n + 1):
        dp[0][j] = j
    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if s[i - 1] == t[j - 1]:
                dp[i][j] = dp[i - 1][j - 1]
            else:
                dp[i][j] = 1 + min(dp[i - 1][j - 1], dp[i][j - 1], dp[i - 1][j])
    return dp[m][n]


def snake_to_camel(name: str) -> str:
    return re.sub(r"_([a-z])", lambda m: m.group(1).upper(), name or "")


def camel_to_snake(name: str) -> str:
    return re.sub(r"([A-Z])", r"_\1", name or "").lower()


def _last_segment(ident: str) -> str:
    """'o.custmer_id' / '"public"."Orders"' / '"public.orders"' -> last identifier, quotes removed."""
    parts = re.findall(r'"[^"]+"|[^."]+', ident or "")
    if not parts:
        return ""
    # PostgreSQL reports qualified relations inside one pair of quotes.
    return unquote_identifier(parts[-1]).strip().split(".")[-1]


def classify_error(error_message: str) -> Tuple[Optional[str], str]:
    """
    Returns (kind, offending_identifier). kind is None when the error is not about a
    missing column or relation.
    """
    text = error_message or ""
    lowered = text.lower()
    if "does not exist" not in lowered:
        return None, ""
    if "column" in lowered:
        m = _RE_UNKNOWN_COLUMN.search(text)
        if m:
            return UNKNOWN_COLUMN, _last_segment(m.group("ident"))
    if "relation" in lowered or "table" in lowered:
        m = _RE_UNKNOWN_RELATION.search(text)
        if m:
            return UNKNOWN_TABLE, _last_segment(m.group("ident"))
    return None, ""


def best_match(wrong: str, candidates: List[str], max_distance: int = MAX_EDIT_DISTANCE) -> Tuple[Optional[str], int]:
    """Pick the candidate for `wrong`; returns (match, score) or (None, -1)."""
    wrong_lower = wrong.lower()
    wrong_camel = snake_to_camel(wrong)
    best: Optional[str] = None
    best_score = max_distance + 1

    for candidate in candidates:
        if candidate.lower() == wrong_lower:
            return candidate, 0
        if candidate == wrong_camel:
            return candidate, 0
        if camel_to_snake(candidate) == wrong_lower:
            return candidate, 0
        dist = levenshtein_distance(candidate, wrong)
        if dist < best_score and dist <= max_distance:
            best_score = dist
            best = candidate

    if best is None:
        return None, -1
    return best, best_score


class AutoRepairEngine:
    """Rewrites a failed query once, using the engine's error message and the schema."""

    def __init__(
        self,
        tokenizer: Optional[SqlTokenizer] = None,
        quoter: Optional[IdentifierQuoter] = None,
        max_distance: int = MAX_EDIT_DISTANCE,
    ):
        self.tokenizer = tokenizer or default_tokenizer
        self.quoter = quoter or IdentifierQuoter(tokenizer=self.tokenizer)
        self.max_distance = max_distance

    def repair(self, sql: str, schema: Schema, error_message: str) -> Optional[str]:
        result = self.propose(sql, schema, error_message)
        return result.sql if result else None

    def propose(self, sql: str, schema: Schema, error_message: str) -> Optional[RepairResult]:
        text = (sql or "").strip()
        if not text:
            return None
        collapsed = _RE_DUPLICATE_KEYWORD.sub(r"\1", text)

        kind, wrong = classify_error(error_message)
        if kind and wrong:
            candidates, scope = self._candidates(kind, collapsed, schema)
            match, score = best_match(wrong, candidates, self.max_distance)
            if match is not None:
                rewritten = self._replace_identifier(collapsed, wrong, match)
                repaired = self.quoter.quote(rewritten, schema)
                SmartLogger.log(
                    "INFO",
                    "text2sql.repair.match",
                    category="text2sql.repair",
                    params={"kind": kind, "wrong": wrong, "match": match, "score": score, "scope": scope},
                    max_inline_chars=0,
                )
                return RepairResult(sql=repaired, kind=kind, original=wrong, replacement=match, score=score)

            SmartLogger.log(
                "INFO",
                "text2sql.repair.no_match",
                category="text2sql.repair",
                params={"kind": kind, "wrong": wrong, "scope": scope, "candidates": candidates[:50]},
                max_inline_chars=0,
            )

        if collapsed != text:
            return RepairResult(sql=self.quoter.quote(collapsed, schema), kind=DUPLICATE_KEYWORD)
        return None

    def _candidates(self, kind: str, sql: str, schema: Schema) -> Tuple[List[str], str]:
        if kind == UNKNOWN_TABLE:
            return schema.table_names(), "ALL"
        table_ref = first_from_table(self.tokenizer.tokenize(sql))
        target = schema.find_table(table_ref) if table_ref else None
        if target is not None:
            return schema.columns_of(target), target
        return schema.all_column_names(), "ALL"

    def _replace_identifier(self, sql: str, wrong: str, replacement: str) -> str:
        """
        Replace quoted occurrences of `wrong`, then bare word occurrences (case-insensitive).
        String literals are left alone.
        """
        wrong_lower = wrong.lower()
        quoted = f'"{replacement}"'
        tokens = self.tokenizer.tokenize(sql)

        out = [
            quoted if tok.kind == QUOTED_IDENTIFIER and unquote_identifier(tok.text).lower() == wrong_lower else tok.text
            for tok in tokens
        ]
        out = [
            quoted if tok.kind == WORD and tok.text.lower() == wrong_lower else text
            for tok, text in zip(tokens, out)
        ]
        return "".join(out)
