"""
Lexical scanning of SQL text.

The scanner is deliberately approximate: it splits text into literals, words, operators and
whitespace without understanding grammar. Callers depend on `SqlTokenizer` only, so a
grammar-based tokenizer can replace `RegexSqlTokenizer` without touching them.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Set

QUOTED_IDENTIFIER = "quoted_identifier"
STRING = "string"
NUMBER = "number"
WORD = "word"
OPERATOR = "operator"
PUNCTUATION = "punctuation"
WHITESPACE = "whitespace"
OTHER = "other"


@dataclass(frozen=True)
class Token:
    kind: str
    text: str

    @property
    def upper(self) -> str:
        return self.text.upper()


class SqlTokenizer(ABC):
    """Splits SQL text into an ordered token stream whose texts concatenate to the input."""

    @abstractmethod
    def tokenize(self, sql: str) -> List[Token]:
        pass


_TOKEN_RE = re.compile(
    r"""
    (?P<quoted_identifier>"(?:[^"]|"")*")
  | (?P<string>'(?:[^']|'')*')
  | (?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<word>[A-Za-z_][A-Za-z0-9_$]*)
  | (?P<whitespace>\s+)
  | (?P<operator>[<>=!~|&^%*/+\-:@#?]+)
  | (?P<punctuation>[(),;.\[\]{}])
  | (?P<other>.)
    """,
    re.VERBOSE | re.DOTALL,
)


class RegexSqlTokenizer(SqlTokenizer):
    def tokenize(self, sql: str) -> List[Token]:
        tokens: List[Token] = []
        for match in _TOKEN_RE.finditer(sql or ""):
            kind = match.lastgroup or OTHER
            tokens.append(Token(kind=kind, text=match.group(0)))
        return tokens


default_tokenizer = RegexSqlTokenizer()


def detokenize(tokens: List[Token]) -> str:
    return "".join(t.text for t in tokens)


def significant(tokens: List[Token]) -> List[Token]:
    """Tokens without whitespace."""
    return [t for t in tokens if t.kind != WHITESPACE]


def unquote_identifier(text: str) -> str:
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return text[1:-1].replace('""', '"')
    return text


def cte_names(tokens: List[Token]) -> Set[str]:
    """
    Lower-cased names bound at the top level of a WITH query.

    Matches `name [(col, ...)] AS [[NOT] MATERIALIZED] (`.
    """
    sig = significant(tokens)
    names: Set[str] = set()
    depth = 0
    for i, tok in enumerate(sig):
        if tok.text == "(":
            depth += 1
        elif tok.text == ")":
            depth = max(0, depth - 1)
        elif depth == 0 and tok.kind in (WORD, QUOTED_IDENTIFIER) and _binds_cte_body(sig, i + 1):
            names.add(unquote_identifier(tok.text).lower())
    return names


def _binds_cte_body(sig: List[Token], j: int) -> bool:
    if j < len(sig) and sig[j].text == "(":
        j = _skip_group(sig, j)
    if j >= len(sig) or sig[j].kind != WORD or sig[j].upper != "AS":
        return False
    j += 1
    if j + 1 < len(sig) and sig[j].upper == "NOT" and sig[j + 1].upper == "MATERIALIZED":
        j += 2
    elif j < len(sig) and sig[j].upper == "MATERIALIZED":
        j += 1
    return j < len(sig) and sig[j].text == "("


def _skip_group(sig: List[Token], start: int) -> int:
    """Index just past the parenthesis that closes the one at `start`."""
    depth = 0
    for k in range(start, len(sig)):
        if sig[k].text == "(":
            depth += 1
        elif sig[k].text == ")":
            depth -= 1
            if depth == 0:
                return k + 1
    return len(sig)


def first_from_table(tokens: List[Token]) -> Optional[str]:
    """
    Table named by the first top-level FROM clause, or None.

    Parenthesised FROMs (EXTRACT(... FROM ...), subqueries, CTE bodies) are skipped; a
    schema-qualified name yields its last segment.
    """
    sig = significant(tokens)
    depth = 0
    for i, tok in enumerate(sig):
        if tok.text == "(":
            depth += 1
            continue
        if tok.text == ")":
            depth = max(0, depth - 1)
            continue
        if depth != 0 or tok.kind != WORD or tok.upper != "FROM":
            continue
        j = i + 1
        name: Optional[str] = None
        while j < len(sig) and sig[j].kind in (WORD, QUOTED_IDENTIFIER):
            if sig[j].kind == WORD and sig[j].upper in SQL_KEYWORDS:
                break
            name = unquote_identifier(sig[j].text)
            if j + 1 < len(sig) and sig[j + 1].text == ".":
                j += 2
                continue
            break
        return name
    return None


# PostgreSQL reserved words, type/function-name keywords and column-name keywords, plus the
# non-reserved words that introduce syntax inside read queries and the built-in function
# names a generator commonly emits. Non-reserved words that are ordinary column names in
# practice (name, type, value, key, data, status, ...) are intentionally absent.
SQL_KEYWORDS: FrozenSet[str] = frozenset(
    {
        # reserved
        "ALL", "ANALYSE", "ANALYZE", "AND", "ANY", "ARRAY", "AS", "ASC", "ASYMMETRIC",
        "BOTH", "CASE", "CAST", "CHECK", "COLLATE", "COLUMN", "CONSTRAINT", "CREATE",
        "CURRENT_CATALOG", "CURRENT_DATE", "CURRENT_ROLE", "CURRENT_TIME",
        "CURRENT_TIMESTAMP", "CURRENT_USER", "DEFAULT", "DEFERRABLE", "DESC", "DISTINCT",
        "DO", "ELSE", "END", "EXCEPT", "FALSE", "FETCH", "FOR", "FOREIGN", "FROM", "GRANT",
        "GROUP", "HAVING", "IN", "INITIALLY", "INTERSECT", "INTO", "LATERAL", "LEADING",
        "LIMIT", "LOCALTIME", "LOCALTIMESTAMP", "NOT", "NULL", "OFFSET", "ON", "ONLY", "OR",
        "ORDER", "PLACING", "PRIMARY", "REFERENCES", "RETURNING", "SELECT", "SESSION_USER",
        "SOME", "SYMMETRIC", "SYSTEM_USER", "TABLE", "THEN", "TO", "TRAILING", "TRUE",
        "UNION", "UNIQUE", "USER", "USING", "VARIADIC", "WHEN", "WHERE", "WINDOW", "WITH",
        # reserved (can be function or type)
        "AUTHORIZATION", "BINARY", "COLLATION", "CONCURRENTLY", "CROSS", "CURRENT_SCHEMA",
        "FREEZE", "FULL", "ILIKE", "INNER", "IS", "ISNULL", "JOIN", "LEFT", "LIKE",
        "NATURAL", "NOTNULL", "OUTER", "OVERLAPS", "RIGHT", "SIMILAR", "TABLESAMPLE",
        "VERBOSE",
        # column-name keywords
        "BETWEEN", "BIGINT", "BIT", "BOOLEAN", "CHAR", "CHARACTER", "COALESCE", "DEC",
        "DECIMAL", "EXISTS", "EXTRACT", "FLOAT", "GREATEST", "GROUPING", "INOUT", "INT",
        "INTEGER", "INTERVAL", "JSON", "JSON_ARRAY", "JSON_ARRAYAGG", "JSON_EXISTS",
        "JSON_OBJECT", "JSON_OBJECTAGG", "JSON_QUERY", "JSON_SCALAR", "JSON_SERIALIZE",
        "JSON_TABLE", "JSON_VALUE", "LEAST", "MERGE_ACTION", "NATIONAL", "NCHAR", "NONE",
        "NORMALIZE", "NULLIF", "NUMERIC", "OUT", "OVERLAY", "POSITION", "PRECISION", "REAL",
        "ROW", "SETOF", "SMALLINT", "SUBSTRING", "TIME", "TIMESTAMP", "TREAT", "TRIM",
        "VALUES", "VARCHAR", "XMLATTRIBUTES", "XMLCONCAT", "XMLELEMENT", "XMLEXISTS",
        "XMLFOREST", "XMLNAMESPACES", "XMLPARSE", "XMLPI", "XMLROOT", "XMLSERIALIZE",
        "XMLTABLE",
        # non-reserved words with syntactic meaning in read queries
        "ABSOLUTE", "AT", "BY", "CASCADE", "CONFLICT", "CUBE", "CURRENT", "CYCLE", "DAY",
        "DEPTH", "EPOCH", "ESCAPE", "EXCLUDE", "EXPLAIN", "FILTER", "FIRST", "FOLLOWING",
        "GROUPS", "HOUR", "IGNORE", "INCLUDING", "KEEP", "LAST", "LOCKED", "MATERIALIZED",
        "MINUTE", "MONTH", "NEXT", "NOWAIT", "NULLS", "OF", "ORDINALITY", "OTHERS", "OVER",
        "PARTITION", "PRECEDING", "RANGE", "RECURSIVE", "RESPECT", "ROLLUP", "ROWS",
        "SEARCH", "SECOND", "SETS", "SHARE", "SKIP", "TIES", "UNBOUNDED", "UNKNOWN",
        "WITHIN", "WITHOUT", "YEAR", "ZONE", "SEQUENCE", "VIEW", "INDEX", "SCHEMA",
        # statements and mutating verbs
        "ALTER", "BEGIN", "CALL", "COMMIT", "COPY", "DELETE", "DROP", "EXEC", "EXECUTE",
        "INSERT", "MERGE", "REPLACE", "REVOKE", "ROLLBACK", "SET", "SHOW", "TRUNCATE",
        "UPDATE", "VACUUM", "LOCK", "PROCEDURE", "FUNCTION", "TRIGGER",
        # type names
        "DATE", "DOUBLE", "TEXT", "UUID", "JSONB", "SERIAL", "BIGSERIAL", "BYTEA",
        "TIMESTAMPTZ", "TIMETZ", "VARYING", "INT2", "INT4", "INT8", "FLOAT4", "FLOAT8",
        "MONEY", "INET", "CIDR",
        # aggregate, window and scalar functions
        "COUNT", "SUM", "AVG", "MIN", "MAX", "ARRAY_AGG", "STRING_AGG", "BOOL_AND",
        "BOOL_OR", "EVERY", "STDDEV", "STDDEV_POP", "STDDEV_SAMP", "VARIANCE", "VAR_POP",
        "VAR_SAMP", "PERCENTILE_CONT", "PERCENTILE_DISC", "MODE", "CORR", "JSON_AGG",
        "JSONB_AGG", "ROW_NUMBER", "RANK", "DENSE_RANK", "PERCENT_RANK", "CUME_DIST",
        "NTILE", "LAG", "LEAD", "FIRST_VALUE", "LAST_VALUE", "NTH_VALUE", "NOW",
        "DATE_TRUNC", "DATE_PART", "AGE", "TO_CHAR", "TO_DATE", "TO_TIMESTAMP",
        "TO_NUMBER", "MAKE_DATE", "MAKE_INTERVAL", "LOWER", "UPPER", "INITCAP", "LENGTH",
        "CHAR_LENGTH", "CONCAT", "CONCAT_WS", "LTRIM", "RTRIM", "BTRIM", "LPAD", "RPAD",
        "SPLIT_PART", "STRPOS", "REGEXP_REPLACE", "REGEXP_MATCHES", "REVERSE",
        "ROUND", "TRUNC", "CEIL", "CEILING", "FLOOR", "ABS", "MOD", "POWER", "SQRT", "EXP",
        "LN", "LOG", "SIGN", "RANDOM", "GENERATE_SERIES", "UNNEST", "CARDINALITY",
        "ARRAY_LENGTH",
    }
)


def is_keyword(word: str) -> bool:
    return (word or "").upper() in SQL_KEYWORDS
