"""
Natural-language query router
- POST /query: question -> generated SQL -> validated execution
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.core.errors import Text2SQLError
from app.core.text2sql_pipeline import Text2SQLPipeline
from app.deps import get_pipeline
from app.smart_logger import SmartLogger


router = APIRouter(tags=["Query"])

INVALID_QUERY_MESSAGE = "Query is required and must be a string"


class QueryResponseData(BaseModel):
    query: str
    generatedQuery: str
    result: Dict[str, Any]
    executionTimeMs: float


class QueryResponse(BaseModel):
    success: bool
    data: Optional[QueryResponseData] = None
    error: Optional[str] = None


class QueryErrorResponse(BaseModel):
    error: str = Field(..., description="Why the request body was rejected")


async def _read_question(request: Request) -> Optional[str]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(body, dict):
        return None
    question = body.get("query")
    if not isinstance(question, str) or not question:
        return None
    return question


@router.post(
    "/query",
    response_model=QueryResponse,
    responses={400: {"model": QueryErrorResponse}, 500: {"model": QueryResponse}},
)
async def run_query(
    request: Request,
    pipeline: Text2SQLPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """
    Answer a natural-language question against the target database.

    Body: {"query": "<question>"}
    """
    question = await _read_question(request)
    if question is None:
        return JSONResponse(status_code=400, content={"error": INVALID_QUERY_MESSAGE})

    SmartLogger.log(
        "INFO",
        "query.request",
        category="query.request",
        params={"query": question},
    )

    try:
        outcome = await pipeline.process(question)
    except Text2SQLError as exc:
        return JSONResponse(status_code=500, content={"success": False, "error": exc.message})
    except Exception as exc:
        SmartLogger.log(
            "ERROR",
            "query.unexpected_error",
            category="query.error",
            params={"query": question, "error": repr(exc)},
            max_inline_chars=0,
        )
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": f"Failed to process query: {exc}"},
        )

    return JSONResponse(status_code=200, content={"success": True, "data": outcome.to_json()})
