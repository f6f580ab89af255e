import json
import os
import threading
import time
from datetime import datetime
from typing import Any, List, Optional

from app.config import settings


class SmartLogger:
    """
    Structured JSONL logger used across the pipeline.

    Each entry is written as one JSON line to the main log (when file output is on) and
    echoed to the console. Params larger than `max_inline_chars` are moved to a separate
    detail file and replaced by a short summary in the main entry.

    Environment (all optional, prefixed with SMART_LOGGER_):
        MAIN_LOG_PATH, DETAIL_LOG_DIR, MIN_LEVEL, INCLUDE_ALL_MIN_LEVEL,
        CONSOLE_OUTPUT, FILE_OUTPUT, BLACKLIST_MESSAGES (JSON array or comma list)

    MIN_LEVEL falls back to the LOG_LEVEL setting.
    """

    LEVEL_PRIORITY = {
        "DEBUG": 0,
        "INFO": 1,
        "WARNING": 2,
        "ERROR": 3,
        "CRITICAL": 4,
    }
    _instance = None

    @classmethod
    def instance(cls) -> "SmartLogger":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    @classmethod
    def log(cls, level, message, category=None, params=None, max_inline_chars=100):
        cls.instance()._log(level, message, category, params, max_inline_chars)

    def __init__(
        self,
        main_log_path=None,
        detail_log_dir=None,
        min_level=None,
        include_all_min_level=None,
        console_output=None,
        file_output=None,
        blacklist_messages=None,
    ):
        self.main_log_path = self._env(main_log_path, "MAIN_LOG_PATH", "logs/text2sql.jsonl")
        self.detail_log_dir = self._env(detail_log_dir, "DETAIL_LOG_DIR", "logs/details")
        self.min_level = self._env(min_level, "MIN_LEVEL", settings.log_level.upper())
        self.include_all_min_level = self._env(include_all_min_level, "INCLUDE_ALL_MIN_LEVEL", "ERROR")
        self.console_output = self._env_flag(console_output, "CONSOLE_OUTPUT", True)
        self.file_output = self._env_flag(file_output, "FILE_OUTPUT", False)
        self.blacklist_messages = self._load_blacklist(blacklist_messages)

        self._lock = threading.Lock()
        self._last_second = None
        self._second_counter = 0

        if self.file_output:
            for dir_path in (os.path.dirname(self.main_log_path), self.detail_log_dir):
                if dir_path:
                    os.makedirs(dir_path, exist_ok=True)

    @staticmethod
    def _env(direct_value: Optional[str], key: str, default: str) -> str:
        if direct_value is not None:
            return direct_value
        return os.environ.get(f"SMART_LOGGER_{key}", default)

    def _env_flag(self, direct_value: Optional[bool], key: str, default: bool) -> bool:
        if direct_value is not None:
            return bool(direct_value)
        raw = self._env(None, key, str(default))
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    def _load_blacklist(self, direct_value: Optional[Any]) -> List[str]:
        raw = direct_value
        if raw is None:
            raw = os.environ.get("SMART_LOGGER_BLACKLIST_MESSAGES")
        if raw is None:
            return []
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return []
            try:
                parsed = json.loads(text)
                items = parsed if isinstance(parsed, list) else [text]
            except json.JSONDecodeError:
                items = text.split(",")
        else:
            items = list(raw)
        return [str(item).strip() for item in items if item is not None and str(item).strip()]

    def _is_blacklisted(self, text: str) -> bool:
        return any(needle in text for needle in self.blacklist_messages)

    def _next_trace_id(self) -> str:
        """Second-resolution id with a per-second counter suffix (e.g. 1700000000_3)."""
        now = str(int(time.time()))
        if self._last_second == now:
            self._second_counter += 1
        else:
            self._last_second = now
            self._second_counter = 1
        return f"{now}_{self._second_counter}"

    def _save_detail(self, trace_id: str, payload: Any) -> Optional[str]:
        if not self.file_output:
            return None
        filename = f"{trace_id}.json"
        with open(os.path.join(self.detail_log_dir, filename), "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2, default=str)
        return filename

    def _priority(self, level: str, default: int) -> int:
        return self.LEVEL_PRIORITY.get((level or "").upper(), default)

    def _should_log(self, level: str) -> bool:
        return self._priority(level, 1) >= self._priority(self.min_level, 0)

    def _should_include_all(self, level: str) -> bool:
        return self._priority(level, 1) >= self._priority(self.include_all_min_level, 3)

    def _log(self, level, message, category=None, params=None, max_inline_chars=100):
        message = "" if message is None else str(message)
        if self._is_blacklisted(message + (category or "")):
            return
        if not self._should_log(level):
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "message": message,
        }
        if category:
            entry["category"] = category

        if params:
            if len(str(params)) <= max_inline_chars or max_inline_chars == 0 or self._should_include_all(level):
                entry["params_summary"] = params
            else:
                with self._lock:
                    trace_id = self._next_trace_id()
                detail_ref = self._save_detail(trace_id, params)
                if detail_ref is None:
                    entry["detail_save_error"] = "file_output_disabled"
                else:
                    entry["has_detail_file"] = True
                    entry["detail_ref"] = detail_ref
                if isinstance(params, dict):
                    entry["params_summary"] = {"keys": list(params.keys())}
                else:
                    entry["params_summary"] = {"type": type(params).__name__}

        if self.file_output:
            with self._lock:
                with open(self.main_log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")

        if self.console_output:
            category_str = f"[{category}]" if category else ""
            if params and self._should_include_all(level):
                print(f"[{level}]{category_str} {message} {params}")
            else:
                print(f"[{level}]{category_str} {message}")
