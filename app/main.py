"""FastAPI main application"""
from dotenv import load_dotenv
load_dotenv()

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.config import get_profile, settings
from app.core.llm_factory import create_llm
from app.core.prompt import SQLChain
from app.deps import AppContext, DatabasePool
from app.routers import query
from app.sanity_checks.runner import run_startup_sanity_checks_or_raise
from app.smart_logger import SmartLogger

logging.basicConfig(level=settings.log_level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    # NOTE: Avoid non-ASCII characters in stdout on Windows cp949 consoles.
    print("Starting Text2SQL API...")
    profile = get_profile(settings.config_profile, overrides=settings)
    db = DatabasePool(profile.database, settings)
    await db.connect()
    print(
        f"Target database: postgres://{profile.database.host}:{profile.database.port}/"
        f"{profile.database.database} (schema={profile.database.schema_name})"
    )
    try:
        # Fail-fast sanity checks (external dependencies)
        await run_startup_sanity_checks_or_raise(db, profile.database)

        handle = create_llm(profile.ai, settings, purpose="sql_generation")
        llm_url_suffix = f" (base_url={profile.ai.base_url})" if profile.ai.base_url else ""
        print(f"Using LLM: {handle.provider.value}:{handle.model}{llm_url_suffix}")
    except Exception:
        await db.disconnect()
        raise

    app.state.context = AppContext(
        settings=settings,
        profile=profile,
        db=db,
        generator=SQLChain(handle.llm, timeout_seconds=settings.generation_timeout_seconds),
    )
    SmartLogger.log(
        "INFO",
        "main.lifespan.started",
        category="main.lifespan.start",
        params={"profile": profile.name, "provider": handle.provider.value, "model": handle.model},
        max_inline_chars=0,
    )

    yield

    # Shutdown
    print("Shutting down...")
    app.state.context = None
    await db.disconnect()
    print("Database pool closed")


app = FastAPI(
    title="Text2SQL API",
    description="""
    Natural language questions answered with validated, read-only SQL.

    ## Workflow
    1. Ask a question: `POST /query` with `{"query": "..."}`
    2. The generated SQL is quoted, screened, dry-run (and repaired once if needed)
    3. Rows come back capped at the configured row limit
    """,
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(query.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
    )
