from __future__ import annotations

import asyncio
from typing import Any

from app.config import DatabaseProfile
from app.sanity_checks.result import SanityCheckResult


async def check_target_db(db: Any, profile: DatabaseProfile, *, timeout_seconds: float = 10.0) -> SanityCheckResult:
    """
    Target DB connection + basic metadata queries.

    Fail-fast conditions:
    - the database is unreachable.
    - the configured schema is missing or has no base tables.
    """
    name = "target_db"
    schema = profile.schema_name

    async def _run() -> dict[str, Any]:
        async with db.acquire() as conn:
            version = await conn.fetchval("SELECT version()")
            current_db = await conn.fetchval("SELECT current_database()")

            exists = await conn.fetchval(
                "SELECT count(*) FROM information_schema.schemata WHERE schema_name = $1",
                schema,
            )
            if not exists:
                raise RuntimeError(f"Missing schema in target DB: {schema!r}")

            table_count = await conn.fetchval(
                """
                SELECT count(*)
                FROM information_schema.tables
                WHERE table_schema = $1
                  AND table_type = 'BASE TABLE'
                """,
                schema,
            )
            if not table_count:
                raise RuntimeError(f"Schema {schema!r} has no base tables")

            return {
                "host": f"{profile.host}:{profile.port}",
                "database": profile.database,
                "schema": schema,
                "current_db": current_db,
                "table_count": int(table_count or 0),
                "version": (version.split(",")[0] if isinstance(version, str) else str(version)),
            }

    try:
        data = await asyncio.wait_for(_run(), timeout=timeout_seconds)
        return SanityCheckResult(name=name, ok=True, detail="OK", data=data)
    except Exception as exc:
        return SanityCheckResult.failure(
            name,
            "Target DB sanity check failed",
            exc,
            data={"host": f"{profile.host}:{profile.port}", "database": profile.database, "schema": schema},
        )
