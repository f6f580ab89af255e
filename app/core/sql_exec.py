"""SQL execution with a row ceiling and timeout"""
import asyncio
import datetime
import decimal
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.config import settings
from app.core.dry_run import strip_terminators
from app.core.errors import ExecutionError
from app.core.sql_tokenizer import NUMBER, WORD, default_tokenizer, significant
from app.smart_logger import SmartLogger


@dataclass
class ExecutionResult:
    """Rows as records plus their field names, in engine order."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    fields: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0

    def to_json(self) -> Dict[str, Any]:
        return {
            "rows": [{k: _json_value(v) for k, v in row.items()} for row in self.rows],
            "rowCount": self.row_count,
            "fields": list(self.fields),
            "executionTimeMs": self.execution_time_ms,
        }


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, datetime.timedelta)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _json_value(v) for k, v in value.items()}
    return str(value)


class SQLExecutor:
    """Execute validated SQL on a freshly acquired pooled connection"""

    def __init__(self, pool: Any, row_limit: Optional[int] = None, timeout_seconds: Optional[float] = None):
        self.pool = pool
        self.row_limit = int(row_limit if row_limit is not None else settings.sql_row_limit)
        self.timeout = float(timeout_seconds if timeout_seconds is not None else settings.sql_timeout_seconds)

    def apply_row_limit(self, sql: str) -> str:
        """
        Append `LIMIT <row_limit>` when the statement has no top-level LIMIT or
        FETCH FIRST/NEXT clause, and lower a literal top-level limit that exceeds the ceiling.
        """
        body = strip_terminators(sql)
        sig = significant(default_tokenizer.tokenize(body))

        depth = 0
        limit_idx = None
        fetch_idx = None
        for i, tok in enumerate(sig):
            if tok.text == "(":
                depth += 1
            elif tok.text == ")":
                depth = max(0, depth - 1)
            elif depth != 0 or tok.kind != WORD:
                continue
            elif tok.upper == "LIMIT":
                limit_idx = i
            elif tok.upper == "FETCH" and i + 1 < len(sig) and sig[i + 1].upper in ("FIRST", "NEXT"):
                fetch_idx = i

        if limit_idx is not None:
            value_tok = sig[limit_idx + 1] if limit_idx + 1 < len(sig) else None
            if value_tok is None:
                return body
            too_large = value_tok.kind == NUMBER and value_tok.text.isdigit() and int(value_tok.text) > self.row_limit
            if too_large or (value_tok.kind == WORD and value_tok.upper == "ALL"):
                return _replace_last(body, rf"\bLIMIT\s+{re.escape(value_tok.text)}\b", f"LIMIT {self.row_limit}")
            return body

        if fetch_idx is not None:
            # FETCH FIRST ROW ONLY omits the count, which means one row.
            value_tok = sig[fetch_idx + 2] if fetch_idx + 2 < len(sig) else None
            if value_tok is not None and value_tok.kind == NUMBER and value_tok.text.isdigit():
                if int(value_tok.text) > self.row_limit:
                    return _replace_last(
                        body,
                        rf"\bFETCH\s+({sig[fetch_idx + 1].text})\s+{re.escape(value_tok.text)}\b",
                        rf"FETCH \1 {self.row_limit}",
                    )
            return body

        return f"{body} LIMIT {self.row_limit}"

    async def execute(self, sql: str) -> ExecutionResult:
        """
        Run the statement with the row ceiling applied.

        Raises:
            ExecutionError: on timeout or any engine error.
        """
        capped_sql = self.apply_row_limit(sql)
        start_time = time.perf_counter()
        try:
            async with self.pool.acquire() as conn:
                records = await asyncio.wait_for(conn.fetch(capped_sql), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise ExecutionError(
                f"Query execution timeout after {self.timeout} seconds"
            ) from exc
        except Exception as exc:
            SmartLogger.log(
                "ERROR",
                "text2sql.execute.failed",
                category="text2sql.execute",
                params={"sql": capped_sql, "error": str(exc)},
                max_inline_chars=0,
            )
            raise ExecutionError(f"Database error: {exc}") from exc

        execution_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
        rows = [dict(record) for record in records[: self.row_limit]]
        fields = list(records[0].keys()) if records else []

        return ExecutionResult(
            rows=rows,
            row_count=len(rows),
            fields=fields,
            execution_time_ms=execution_time_ms,
        )


def _replace_last(body: str, pattern: str, replacement: str) -> str:
    """Substitute the last case-insensitive match of `pattern` in `body`."""
    matches = list(re.finditer(pattern, body, flags=re.IGNORECASE))
    if not matches:
        return body
    last = matches[-1]
    return f"{body[:last.start()]}{last.expand(replacement)}{body[last.end():]}"
