from __future__ import annotations

from typing import Any, List

from app.config import DatabaseProfile
from app.smart_logger import SmartLogger
from app.sanity_checks.result import SanityCheckResult
from app.sanity_checks.checks.check_db import check_target_db


async def run_startup_sanity_checks_or_raise(db: Any, profile: DatabaseProfile) -> List[SanityCheckResult]:
    """
    Run startup sanity checks (fail-fast).

    Raises:
        RuntimeError: if any required check fails.
    """
    checks = [
        check_target_db(db, profile),
    ]

    results: List[SanityCheckResult] = []
    for coro in checks:
        try:
            results.append(await coro)
        except Exception as exc:
            # A check should return a failed result rather than raise.
            results.append(
                SanityCheckResult.failure("sanity_check_internal_error", "A sanity check raised unexpectedly", exc)
            )

    failed = [r for r in results if not r.ok]

    for r in results:
        SmartLogger.log(
            "INFO" if r.ok else "ERROR",
            f"startup.sanity.{r.name}." + ("ok" if r.ok else "fail"),
            category="startup.sanity",
            params=r.to_log_params(),
            max_inline_chars=0,
        )

    if failed:
        SmartLogger.log(
            "CRITICAL",
            "startup.sanity.failed",
            category="startup.sanity",
            params={"failed": [f.name for f in failed]},
            max_inline_chars=0,
        )
        raise RuntimeError("Startup sanity checks failed. See logs for details.")

    SmartLogger.log("INFO", "startup.sanity.passed", category="startup.sanity", params=None, max_inline_chars=0)
    return results
