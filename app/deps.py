"""Dependency injection for FastAPI"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import asyncpg
from fastapi import HTTPException, Request

from app.config import AppProfile, DatabaseProfile, Settings, settings as default_settings
from app.core.dry_run import DryRunValidator
from app.core.identifier_quoter import IdentifierQuoter
from app.core.prompt import QueryGenerator
from app.core.schema_catalog import SchemaCatalog
from app.core.sql_autorepair import AutoRepairEngine
from app.core.sql_exec import SQLExecutor
from app.core.sql_guard import SafetyScreen
from app.core.text2sql_pipeline import Text2SQLPipeline
from app.smart_logger import SmartLogger


class DatabasePool:
    """Target database connection pool manager"""

    def __init__(self, profile: DatabaseProfile, cfg: Optional[Settings] = None):
        self.profile = profile
        self.cfg = cfg or default_settings
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create the pool and verify connectivity with a trivial query."""
        if self.pool is not None:
            return
        # SSL mode: 'disable' -> ssl=False, other values passed as ssl parameter
        ssl_mode = self.cfg.target_db_ssl if self.cfg.target_db_ssl != "disable" else False
        self.pool = await asyncpg.create_pool(
            host=self.profile.host,
            port=self.profile.port,
            database=self.profile.database,
            user=self.profile.user,
            password=self.profile.password,
            ssl=ssl_mode,
            min_size=max(1, int(self.cfg.target_db_pool_min_size)),
            max_size=max(1, int(self.cfg.target_db_pool_max_size)),
        )
        async with self.pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        SmartLogger.log(
            "INFO",
            "db.pool.connected",
            category="db.pool",
            params={
                "host": f"{self.profile.host}:{self.profile.port}",
                "database": self.profile.database,
                "schema": self.profile.schema_name,
            },
            max_inline_chars=0,
        )

    async def disconnect(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            SmartLogger.log("INFO", "db.pool.closed", category="db.pool", params=None, max_inline_chars=0)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        """Borrow a connection; it goes back to the pool when the block exits."""
        if self.pool is None:
            await self.connect()
        async with self.pool.acquire() as conn:
            yield conn


@dataclass
class AppContext:
    """Process-wide state shared by every request; pipelines themselves are per request."""

    settings: Settings
    profile: AppProfile
    db: Any
    generator: QueryGenerator

    def build_pipeline(self) -> Text2SQLPipeline:
        cfg = self.settings
        quoter = IdentifierQuoter()
        return Text2SQLPipeline(
            catalog=SchemaCatalog(self.db, schema_name=self.profile.database.schema_name),
            generator=self.generator,
            validator=DryRunValidator(self.db, timeout_seconds=cfg.dry_run_timeout_seconds),
            executor=SQLExecutor(
                self.db,
                row_limit=cfg.sql_row_limit,
                timeout_seconds=cfg.sql_timeout_seconds,
            ),
            quoter=quoter,
            screen=SafetyScreen(
                max_join_depth=cfg.max_join_depth,
                max_subquery_depth=cfg.max_subquery_depth,
            ),
            repairer=AutoRepairEngine(quoter=quoter),
            max_repair_attempts=cfg.max_repair_attempts,
        )


def get_app_context(request: Request) -> AppContext:
    """FastAPI dependency for the application context built at startup"""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service is not initialized")
    return context


def get_pipeline(request: Request) -> Text2SQLPipeline:
    """FastAPI dependency: a fresh pipeline for this request"""
    return get_app_context(request).build_pipeline()
