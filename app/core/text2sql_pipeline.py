"""
Text-to-SQL pipeline.

schema fetch -> generation -> identifier quoting -> safety screen -> dry run
-> (on failure) single repair + dry run -> bounded execution.

A query only reaches execution after it has passed the safety screen and then the dry run,
in that order; a repaired query must pass the dry run again.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.config import settings
from app.core.dry_run import DryRunValidator
from app.core.errors import (
    GenerationError,
    SafetyRejection,
    Text2SQLError,
    ValidationFailure,
)
from app.core.identifier_quoter import IdentifierQuoter
from app.core.prompt import QueryGenerator
from app.core.schema_catalog import Schema, SchemaCatalog
from app.core.sql_autorepair import AutoRepairEngine
from app.core.sql_exec import ExecutionResult, SQLExecutor
from app.core.sql_guard import SafetyScreen
from app.smart_logger import SmartLogger


@dataclass
class CandidateQuery:
    """Per-request unit of work, transformed in place by each stage."""

    raw: str
    quoted: str = ""
    validated: Optional[str] = None
    repair_attempts: int = 0
    repairs: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PipelineResult:
    query: str
    generated_query: str
    result: ExecutionResult
    execution_time_ms: float
    executed_query: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "generatedQuery": self.generated_query,
            "result": self.result.to_json(),
            "executionTimeMs": self.execution_time_ms,
        }


class Text2SQLPipeline:
    def __init__(
        self,
        *,
        catalog: SchemaCatalog,
        generator: QueryGenerator,
        validator: DryRunValidator,
        executor: SQLExecutor,
        quoter: Optional[IdentifierQuoter] = None,
        screen: Optional[SafetyScreen] = None,
        repairer: Optional[AutoRepairEngine] = None,
        max_repair_attempts: Optional[int] = None,
    ):
        self.catalog = catalog
        self.generator = generator
        self.validator = validator
        self.executor = executor
        self.quoter = quoter or IdentifierQuoter()
        self.screen = screen or SafetyScreen()
        self.repairer = repairer or AutoRepairEngine(quoter=self.quoter)
        self.max_repair_attempts = max(
            0, int(max_repair_attempts if max_repair_attempts is not None else settings.max_repair_attempts)
        )

    async def process(self, question: str) -> PipelineResult:
        """
        Run the full pipeline for one natural-language question.

        Raises:
            Text2SQLError: the concrete subclass of the failing stage, with the message
                prefixed by "Failed to process query: ".
        """
        start = time.perf_counter()
        try:
            schema = await self.catalog.extract()
            raw_sql = await self.generator.generate_sql(question, schema)
            if not (raw_sql or "").strip():
                raise GenerationError("Query generator returned no SQL")

            candidate = CandidateQuery(raw=raw_sql)
            candidate.quoted = self.quoter.quote(raw_sql, schema)
            SmartLogger.log(
                "INFO",
                "text2sql.pipeline.generated",
                category="text2sql.pipeline",
                params={"question": question, "raw": raw_sql, "quoted": candidate.quoted},
                max_inline_chars=0,
            )

            verdict = self.screen.check(candidate.quoted, schema)
            if not verdict.ok:
                raise SafetyRejection(verdict.reason, sql=candidate.quoted)

            candidate.validated = await self._validate(candidate, schema)
            result = await self.executor.execute(candidate.validated)
        except Text2SQLError as exc:
            SmartLogger.log(
                "ERROR",
                f"text2sql.pipeline.{exc.stage}.failed",
                category="text2sql.pipeline",
                params={"question": question, "error": exc.message, "detail": _failure_detail(exc)},
                max_inline_chars=0,
            )
            raise exc.prefixed("Failed to process query: ") from exc

        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        SmartLogger.log(
            "INFO",
            "text2sql.pipeline.done",
            category="text2sql.pipeline",
            params={
                "question": question,
                "sql": candidate.validated,
                "row_count": result.row_count,
                "repair_attempts": candidate.repair_attempts,
                "execution_time_ms": elapsed_ms,
            },
            max_inline_chars=0,
        )
        return PipelineResult(
            query=question,
            generated_query=raw_sql,
            result=result,
            execution_time_ms=elapsed_ms,
            executed_query=candidate.validated,
        )

    async def _validate(self, candidate: CandidateQuery, schema: Schema) -> str:
        outcome = await self.validator.validate(candidate.quoted)
        if outcome.ok:
            return outcome.sql

        current_sql = candidate.quoted
        error = outcome.error or ""
        repaired_sql: Optional[str] = None
        while candidate.repair_attempts < self.max_repair_attempts:
            candidate.repair_attempts += 1
            proposal = self.repairer.propose(current_sql, schema, error)
            if proposal is None or proposal.sql.strip() == current_sql.strip():
                break

            repaired_sql = proposal.sql
            candidate.repairs.append(
                {"kind": proposal.kind, "from": proposal.original, "to": proposal.replacement, "score": proposal.score}
            )
            # A repaired query is new text: screen it again before it reaches the engine.
            verdict = self.screen.check(repaired_sql, schema)
            if not verdict.ok:
                raise SafetyRejection(verdict.reason, sql=repaired_sql)

            outcome = await self.validator.validate(repaired_sql)
            if outcome.ok:
                SmartLogger.log(
                    "INFO",
                    "text2sql.pipeline.repair.applied",
                    category="text2sql.pipeline",
                    params={"sql": outcome.sql, "repairs": candidate.repairs},
                    max_inline_chars=0,
                )
                return outcome.sql
            current_sql = repaired_sql
            error = outcome.error or ""

        raise ValidationFailure(error, sql=candidate.quoted, repaired_sql=repaired_sql)


def _failure_detail(exc: Text2SQLError) -> Dict[str, Any]:
    if isinstance(exc, SafetyRejection):
        return {"reason": exc.reason, "sql": exc.sql}
    if isinstance(exc, ValidationFailure):
        return {"engine_error": exc.engine_error, "sql": exc.sql, "repaired_sql": exc.repaired_sql}
    return {}
