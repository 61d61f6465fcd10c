import json
import os
import threading
import time
from datetime import datetime
from typing import Any, Optional


class SmartLogger:
    """
    Structured logger used across plancost.

    Every entry is one JSON object (timestamp, level, message key, category,
    params). Entries go to the console and, when enabled, to a JSONL file.
    Large params are moved to a per-entry detail file so the main log stays
    greppable.

    Configuration comes from constructor arguments or SMART_LOGGER_* env vars:
        SMART_LOGGER_MAIN_LOG_PATH, SMART_LOGGER_DETAIL_LOG_DIR,
        SMART_LOGGER_MIN_LEVEL, SMART_LOGGER_INCLUDE_ALL_MIN_LEVEL,
        SMART_LOGGER_CONSOLE_OUTPUT, SMART_LOGGER_FILE_OUTPUT
    """

    LEVEL_PRIORITY = {
        "DEBUG": 0,
        "INFO": 1,
        "WARNING": 2,
        "ERROR": 3,
        "CRITICAL": 4
    }
    _instance = None

    @classmethod
    def instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls):
        """Drop the shared instance so the next log call re-reads the environment."""
        cls._instance = None

    @classmethod
    def log(cls, level, message, category=None, params=None, max_inline_chars=100):
        cls.instance()._log(level, message, category, params, max_inline_chars)

    def __init__(self,
                 main_log_path=None,
                 detail_log_dir=None,
                 min_level=None,
                 include_all_min_level=None,
                 console_output=None,
                 file_output=None):
        self.main_log_path = self._get_env_variable(
            main_log_path, "MAIN_LOG_PATH", "logs/plancost.jsonl"
        )
        self.detail_log_dir = self._get_env_variable(
            detail_log_dir, "DETAIL_LOG_DIR", "logs/details"
        )
        self.min_level = self._get_env_variable(
            min_level, "MIN_LEVEL", "WARNING"
        )
        self.include_all_min_level = self._get_env_variable(
            include_all_min_level, "INCLUDE_ALL_MIN_LEVEL", "ERROR"
        )
        self.console_output = self._get_env_variable(
            str(console_output) if console_output is not None else None, "CONSOLE_OUTPUT", "True"
        ) == "True"
        self.file_output = self._get_env_variable(
            str(file_output) if file_output is not None else None, "FILE_OUTPUT", "False"
        ) == "True"

        self._lock = threading.Lock()
        self._last_timestamp = None
        self._timestamp_counter = 0

        if self.file_output:
            for dir_path in (os.path.dirname(self.main_log_path), self.detail_log_dir):
                if dir_path:
                    os.makedirs(dir_path, exist_ok=True)

    def _get_env_variable(self, direct_value: Optional[str], env_key: str, default: str) -> str:
        if direct_value is not None:
            return direct_value
        return os.environ.get(f"SMART_LOGGER_{env_key}", default)

    def _generate_unique_trace_id(self):
        # same-second entries get _1, _2, ... suffixes
        current_timestamp = str(int(time.time()))

        if self._last_timestamp == current_timestamp:
            self._timestamp_counter += 1
        else:
            self._last_timestamp = current_timestamp
            self._timestamp_counter = 1

        return f"{current_timestamp}_{self._timestamp_counter}"

    def _save_detail_payload(self, trace_id, payload):
        if not self.file_output:
            return None

        filepath = os.path.join(self.detail_log_dir, f"{trace_id}.json")
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False, indent=2, default=str)
            return f"{trace_id}.json"
        except OSError as e:
            return f"Error saving detail: {str(e)}"

    def _should_log(self, level):
        level_priority = self.LEVEL_PRIORITY.get(level.upper(), 1)
        min_priority = self.LEVEL_PRIORITY.get(self.min_level.upper(), 0)
        return level_priority >= min_priority

    def _should_include_all(self, level):
        level_priority = self.LEVEL_PRIORITY.get(level.upper(), 1)
        min_priority = self.LEVEL_PRIORITY.get(self.include_all_min_level.upper(), 3)
        return level_priority >= min_priority

    def _build_entry(self, level, message, category, params, max_inline_chars) -> dict:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "message": "" if message is None else str(message)
        }

        if category:
            log_entry["category"] = category

        if not params:
            return log_entry

        if len(str(params)) <= max_inline_chars or self._should_include_all(level):
            log_entry["params_summary"] = params
            return log_entry

        with self._lock:
            trace_id = self._generate_unique_trace_id()
        detail_filename = self._save_detail_payload(trace_id, params)

        if detail_filename is None:
            log_entry["detail_save_error"] = "file_output_disabled"
        elif detail_filename.startswith("Error"):
            log_entry["detail_save_error"] = detail_filename
        else:
            log_entry["has_detail_file"] = True
            log_entry["detail_ref"] = detail_filename

        if isinstance(params, dict):
            log_entry["params_summary"] = {"keys": list(params.keys())}
        elif isinstance(params, (list, tuple)):
            log_entry["params_summary"] = {"type": type(params).__name__, "length": len(params)}
        else:
            log_entry["params_summary"] = {"type": type(params).__name__}
        return log_entry

    def _log(self, level, message, category=None, params=None, max_inline_chars=100):
        """
        Args:
            level (str): DEBUG, INFO, WARNING, ERROR, CRITICAL
            message (str): dotted message key, e.g. "cost_estimator.policy.keyed"
            category (str): component name
            params (dict): structured details
            max_inline_chars (int): params longer than this go to a detail file
        """
        if not self._should_log(level):
            return

        log_entry = self._build_entry(level, message, category, params, max_inline_chars)

        if self.file_output:
            with self._lock:
                with open(self.main_log_path, 'a', encoding='utf-8') as f:
                    f.write(json.dumps(log_entry, ensure_ascii=False, default=str) + "\n")

        if self.console_output:
            category_str = f"[{category}]" if category else ""
            if self._should_include_all(level):
                print(f"[{level}]{category_str} {message} {params}")
            else:
                print(f"[{level}]{category_str} {message}")
