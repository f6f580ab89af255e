from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class SanityCheckResult:
    name: str
    ok: bool
    detail: str = ""
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def failure(
        cls, name: str, detail: str, exc: BaseException, data: Optional[dict[str, Any]] = None
    ) -> "SanityCheckResult":
        return cls(
            name=name,
            ok=False,
            detail=detail,
            data=data,
            error=repr(exc) + "\n" + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )

    def to_log_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"name": self.name, "ok": self.ok, "detail": self.detail}
        if self.data is not None:
            params["data"] = self.data
        if self.error:
            params["error"] = self.error
        return params
