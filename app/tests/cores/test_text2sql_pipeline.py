# python -m pytest app/tests/cores/test_text2sql_pipeline.py -v

import pytest

from app.core.dry_run import DryRunValidator
from app.core.errors import (
    ExecutionError,
    GenerationError,
    SafetyRejection,
    SchemaError,
    ValidationFailure,
)
from app.core.schema_catalog import SchemaCatalog
from app.core.sql_exec import SQLExecutor
from app.core.text2sql_pipeline import Text2SQLPipeline
from app.tests.fakes import OK_PLAN, ORDERS_TABLES, FakeDatabase, StaticGenerator


def _explain_rejecting_typos(sql: str):
    """EXPLAIN stand-in: the first misspelled column found in the query is reported as missing."""
    for bad in ("custmer_id", "zzzzz", "totl"):
        if bad in sql:
            return RuntimeError(f'column "{bad}" does not exist')
    return OK_PLAN


def _pipeline(db: FakeDatabase, generated, **kwargs) -> Text2SQLPipeline:
    return Text2SQLPipeline(
        catalog=SchemaCatalog(db),
        generator=StaticGenerator(generated),
        validator=DryRunValidator(db),
        executor=SQLExecutor(db, row_limit=1000),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_valid_query_is_quoted_validated_and_capped():
    rows = [{"id": i, "customer_id": 1, "total": 150} for i in range(1200)]
    db = FakeDatabase(ORDERS_TABLES, rows=rows)

    outcome = await _pipeline(db, "SELECT * FROM orders WHERE total > 100").process("big orders")

    assert db.explained == ['EXPLAIN (FORMAT JSON) SELECT * FROM "orders" WHERE "total" > 100']
    assert db.executed == ['SELECT * FROM "orders" WHERE "total" > 100 LIMIT 1000']
    assert outcome.generated_query == "SELECT * FROM orders WHERE total > 100"
    assert outcome.executed_query == 'SELECT * FROM "orders" WHERE "total" > 100;'
    assert outcome.result.row_count == 1000

    payload = outcome.to_json()
    assert payload["query"] == "big orders"
    assert payload["result"]["rowCount"] == 1000
    assert payload["executionTimeMs"] >= 0


@pytest.mark.asyncio
async def test_column_typo_is_repaired_once_and_revalidated():
    db = FakeDatabase(ORDERS_TABLES, rows=[{"customer_id": 1}], explain=_explain_rejecting_typos)

    outcome = await _pipeline(db, "SELECT custmer_id FROM orders").process("customers")

    assert db.explained == [
        'EXPLAIN (FORMAT JSON) SELECT custmer_id FROM "orders"',
        'EXPLAIN (FORMAT JSON) SELECT "customer_id" FROM "orders"',
    ]
    assert db.executed == ['SELECT "customer_id" FROM "orders" LIMIT 1000']
    assert outcome.generated_query == "SELECT custmer_id FROM orders"


@pytest.mark.asyncio
async def test_mutating_statement_is_rejected_before_validation():
    db = FakeDatabase(ORDERS_TABLES)

    with pytest.raises(SafetyRejection) as excinfo:
        await _pipeline(db, "DELETE FROM orders").process("remove everything")

    assert str(excinfo.value) == (
        "Failed to process query: Generated DB Query is invalid. Please rephrase your query."
    )
    assert excinfo.value.sql == 'DELETE FROM "orders"'
    assert db.explained == []
    assert db.executed == []


@pytest.mark.asyncio
async def test_unrepairable_column_reports_validation_failure():
    db = FakeDatabase(ORDERS_TABLES, explain=_explain_rejecting_typos)

    with pytest.raises(ValidationFailure) as excinfo:
        await _pipeline(db, "SELECT zzzzz FROM orders").process("nonsense")

    assert excinfo.value.engine_error == 'column "zzzzz" does not exist'
    assert excinfo.value.repaired_sql is None
    assert excinfo.value.message.startswith("Failed to process query: ")
    assert len(db.explained) == 1
    assert db.executed == []


@pytest.mark.asyncio
async def test_second_error_after_repair_is_not_repaired_again():
    db = FakeDatabase(ORDERS_TABLES, explain=_explain_rejecting_typos)

    with pytest.raises(ValidationFailure) as excinfo:
        await _pipeline(db, "SELECT custmer_id, totl FROM orders").process("two typos")

    assert len(db.explained) == 2
    assert excinfo.value.repaired_sql == 'SELECT "customer_id", totl FROM "orders"'
    assert excinfo.value.engine_error == 'column "totl" does not exist'


@pytest.mark.asyncio
async def test_bounded_repair_loop_heals_multiple_errors_when_configured():
    db = FakeDatabase(ORDERS_TABLES, rows=[], explain=_explain_rejecting_typos)

    outcome = await _pipeline(db, "SELECT custmer_id, totl FROM orders", max_repair_attempts=2).process("two typos")

    assert len(db.explained) == 3
    assert db.executed == ['SELECT "customer_id", "total" FROM "orders" LIMIT 1000']
    assert outcome.result.row_count == 0


@pytest.mark.asyncio
async def test_schema_failure_is_wrapped_and_stops_the_pipeline():
    db = FakeDatabase(ORDERS_TABLES, fail_catalog=OSError("connection reset"))
    generator = StaticGenerator("SELECT 1")
    pipeline = Text2SQLPipeline(
        catalog=SchemaCatalog(db),
        generator=generator,
        validator=DryRunValidator(db),
        executor=SQLExecutor(db),
    )

    with pytest.raises(SchemaError) as excinfo:
        await pipeline.process("anything")

    assert str(excinfo.value) == "Failed to process query: Failed to read database schema: connection reset"
    assert generator.questions == []


@pytest.mark.asyncio
async def test_generation_failure_propagates_with_its_class():
    db = FakeDatabase(ORDERS_TABLES)

    with pytest.raises(GenerationError) as excinfo:
        await _pipeline(db, GenerationError("model unavailable")).process("q")

    assert excinfo.value.message == "Failed to process query: model unavailable"
    assert isinstance(excinfo.value.__cause__, GenerationError)


@pytest.mark.asyncio
async def test_empty_generation_is_a_generation_error():
    db = FakeDatabase(ORDERS_TABLES)

    with pytest.raises(GenerationError):
        await _pipeline(db, "   ").process("q")


@pytest.mark.asyncio
async def test_execution_failure_after_validation():
    db = FakeDatabase(ORDERS_TABLES, rows=lambda sql: RuntimeError("canceling statement due to conflict"))

    with pytest.raises(ExecutionError) as excinfo:
        await _pipeline(db, "SELECT id FROM orders").process("ids")

    assert excinfo.value.message == "Failed to process query: Database error: canceling statement due to conflict"
    assert db.acquired == db.released
