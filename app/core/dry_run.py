"""Plan-only validation against the live engine"""
import asyncio
import json
from dataclasses import dataclass
from typing import Any, Optional

from app.config import settings
from app.smart_logger import SmartLogger


@dataclass(frozen=True)
class DryRunResult:
    """Either a validated statement or the engine's verbatim error."""

    ok: bool
    sql: str
    error: Optional[str] = None
    total_cost: Optional[float] = None
    plan_rows: Optional[int] = None


def strip_terminators(sql: str) -> str:
    text = (sql or "").strip()
    while text.endswith(";"):
        text = text[:-1].rstrip()
    return text


class DryRunValidator:
    """
    Asks PostgreSQL for an execution plan (EXPLAIN without ANALYZE), so the statement is
    resolved against the real catalog, types and permissions but no rows are produced.
    """

    def __init__(self, pool: Any, timeout_seconds: Optional[float] = None):
        self.pool = pool
        self.timeout = float(timeout_seconds if timeout_seconds is not None else settings.dry_run_timeout_seconds)

    @staticmethod
    def build_explain_sql(sql: str) -> str:
        return f"EXPLAIN (FORMAT JSON) {strip_terminators(sql)}"

    async def validate(self, sql: str) -> DryRunResult:
        body = strip_terminators(sql)
        if not body:
            return DryRunResult(ok=False, sql="", error="empty query")
        normalized = f"{body};"

        try:
            async with self.pool.acquire() as conn:
                payload = await asyncio.wait_for(
                    conn.fetchval(self.build_explain_sql(body)),
                    timeout=self.timeout,
                )
        except asyncio.TimeoutError:
            error = f"Dry run timeout after {self.timeout} seconds"
            self._log_failure(normalized, error)
            return DryRunResult(ok=False, sql=normalized, error=error)
        except Exception as exc:
            error = str(exc)
            self._log_failure(normalized, error)
            return DryRunResult(ok=False, sql=normalized, error=error)

        total_cost, plan_rows = self._plan_metrics(payload)
        SmartLogger.log(
            "DEBUG",
            "text2sql.dry_run.ok",
            category="text2sql.dry_run",
            params={"sql": normalized, "total_cost": total_cost, "plan_rows": plan_rows},
        )
        return DryRunResult(ok=True, sql=normalized, total_cost=total_cost, plan_rows=plan_rows)

    @staticmethod
    def _plan_metrics(payload: Any):
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                return None, None
        root = payload[0] if isinstance(payload, list) and payload else payload
        if not isinstance(root, dict):
            return None, None
        plan = root.get("Plan", {}) or {}
        cost = plan.get("Total Cost")
        rows = plan.get("Plan Rows")
        return (
            float(cost) if cost is not None else None,
            int(rows) if rows is not None else None,
        )

    @staticmethod
    def _log_failure(sql: str, error: str) -> None:
        SmartLogger.log(
            "WARNING",
            "text2sql.dry_run.failed",
            category="text2sql.dry_run",
            params={"sql": sql, "error": error},
            max_inline_chars=0,
        )
