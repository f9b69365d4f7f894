import datetime
import json
import logging
import time
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ordersheet.utils.snitch import NO_TRACE, get_trace_id, start_trace

logger = logging.getLogger(__name__)


class RunMonitor:
    """
    Context manager that tracks a multi-destination run (render-all, send-all)
    and writes a summary JSON when it exits, whether it succeeded or crashed.

    Pass `summary_dir=None` to keep the summary in memory only.
    """

    def __init__(self, step_name: str, summary_dir: Optional[Union[str, Path]] = None):
        self.step_name = step_name
        self.summary_dir = Path(summary_dir) if summary_dir else None

        self.start_time = None
        self.duration = 0.0

        self.items_processed: List[str] = []
        self.items_failed: Dict[str, str] = {}
        self.warnings: List[str] = []
        self.logs: Dict[str, Any] = {}

        self.status = "pending"
        self.error_message = None
        self.error_traceback = None
        self.summary_path: Optional[Path] = None
        self.trace_id = None

    def __enter__(self):
        self.start_time = time.time()
        # A run outside any request still gets its own trace id
        self.trace_id = get_trace_id()
        if self.trace_id == NO_TRACE:
            self.trace_id = start_trace()
        logger.info(f"=== [{self.step_name}] Run started ===")
        return self

    def log_process_item(self, item_name: str, status: str = "success", error: Exception = None):
        if status == "success":
            self.items_processed.append(item_name)
            logger.info(f"[{self.step_name}] Processed: {item_name}")
        else:
            self.items_failed[item_name] = str(error) if error else status
            logger.error(f"[{self.step_name}] Failed to process {item_name}: {error}")

    def log_warning(self, message: str):
        self.warnings.append(message)
        logger.warning(f"[{self.step_name}] WARNING: {message}")

    def update_logs(self, key: str, data: Any):
        if key not in self.logs:
            self.logs[key] = data
        elif isinstance(self.logs[key], list) and isinstance(data, list):
            self.logs[key].extend(data)
        elif isinstance(self.logs[key], dict) and isinstance(data, dict):
            self.logs[key].update(data)
        else:
            self.logs[key] = data

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time:
            self.duration = time.time() - self.start_time

        if exc_type:
            self.status = "fatal"
            self.error_message = str(exc_val)
            self.error_traceback = "".join(traceback.format_exception(exc_type, exc_val, exc_tb))
            logger.critical(f"[{self.step_name}] Run crashed: {self.error_message}")
        elif self.items_failed:
            self.status = "partial_success" if self.items_processed else "failure"
            self.error_message = f"Failed items: {sorted(self.items_failed)}"
        elif self.warnings:
            self.status = "success_with_warnings"
        else:
            self.status = "success"

        try:
            self._write_summary()
        except OSError as e:
            logger.error(f"[{self.step_name}] Failed to write run summary: {e}")

        # Never swallow the exception
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step_name,
            "traceId": self.trace_id,
            "status": self.status,
            "timestamp": datetime.datetime.now().isoformat(),
            "durationSeconds": self.duration,
            "itemsProcessed": self.items_processed,
            "itemsFailed": self.items_failed,
            "warnings": self.warnings,
            "errorMessage": self.error_message,
            "errorTraceback": self.error_traceback,
            "customLogs": self.logs,
        }

    def _write_summary(self):
        if self.summary_dir is None:
            return

        self.summary_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self.summary_dir / f"{self.step_name}_{stamp}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=4, default=str)

        self.summary_path = path
        logger.info(f"[{self.step_name}] Run summary written to {path}")
