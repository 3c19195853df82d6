"""
Structured logging for VoteChain.

One process-wide logger writes to the console and to a daily file, appends
keyword context as JSON, and keeps in-process settlement counters. The
counters are observational only; nothing in settlement reads them back.
"""

import json
import logging
import os
import sys
import threading
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"votechain_{datetime.now().strftime('%Y%m%d')}.log"
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)  # file always gets everything
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


class StructuredLogger:
    """
    Logger with keyword context and settlement metrics.

    Usage:
        logger = get_logger()
        logger.info("Room finalized", room_id=room_id, ledger_status="confirmed")
    """

    def __init__(
        self,
        name: str = "votechain",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for the daily log file (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        numeric_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if enable_file else numeric_level)
        self.logger.handlers.clear()

        if enable_console:
            self.logger.addHandler(_console_handler(numeric_level))
        if enable_file:
            self.logger.addHandler(_file_handler(log_dir or Path("logs")))

        self._lock = threading.Lock()
        self.attempted = 0
        self.finalized = 0
        self.oracle_calls = 0
        self.fallbacks = 0
        self.rejected: Counter = Counter()
        self.ledger_statuses: Counter = Counter()

    def set_level(self, level: str):
        """Apply a console level after construction (e.g. from Settings.log_level)."""
        numeric_level = getattr(logging, level.upper())
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(numeric_level)
        if not any(isinstance(h, logging.FileHandler) for h in self.logger.handlers):
            self.logger.setLevel(numeric_level)

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def critical(self, message: str, **context):
        self._log(logging.CRITICAL, message, context)

    def _log(self, level: int, message: str, context: Dict[str, Any]):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Settlement metrics, updated from request threads

    def record_settlement_attempt(self):
        with self._lock:
            self.attempted += 1

    def record_settlement_finalized(self):
        """Count a room reaching the finalized state."""
        with self._lock:
            self.finalized += 1

    def record_settlement_rejected(self, kind: str):
        with self._lock:
            self.rejected[kind] += 1

    def record_oracle_call(self):
        with self._lock:
            self.oracle_calls += 1

    def record_fallback(self):
        """Count vote-count fallback scores replacing the oracle's."""
        with self._lock:
            self.fallbacks += 1

    def record_ledger_status(self, status: str):
        with self._lock:
            self.ledger_statuses[status] += 1

    @property
    def metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "settlements_attempted": self.attempted,
                "settlements_finalized": self.finalized,
                "settlements_rejected": dict(self.rejected),
                "oracle_calls": self.oracle_calls,
                "fallbacks_used": self.fallbacks,
                "ledger_status": dict(self.ledger_statuses),
            }

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of the counters, plus finalize_rate once anything was attempted."""
        snapshot = self.metrics
        attempted = snapshot["settlements_attempted"]
        if attempted:
            snapshot["finalize_rate"] = round(snapshot["settlements_finalized"] / attempted, 3)
        return snapshot

    def log_metrics_summary(self):
        snapshot = self.metrics
        attempted = snapshot["settlements_attempted"]
        finalized = snapshot["settlements_finalized"]
        percent = round(finalized / attempted * 100, 1) if attempted else 0

        self.info("=== Settlement Session Metrics ===")
        self.info(f"Oracle Calls: {snapshot['oracle_calls']} (fallbacks: {snapshot['fallbacks_used']})")
        self.info(f"Settlements: {finalized}/{attempted} ({percent}% finalized)")

        for title, key in (("Rejections:", "settlements_rejected"), ("Ledger Status:", "ledger_status")):
            counts = snapshot[key]
            if not counts:
                continue
            self.info(title)
            for name, count in sorted(counts.items()):
                self.info(f"  {name}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "votechain", level: Optional[str] = None, **kwargs) -> StructuredLogger:
    """
    Get or create the process-wide logger.

    Level, log directory and file output default to LOG_LEVEL,
    VOTECHAIN_LOG_DIR and VOTECHAIN_LOG_TO_FILE ("0" disables the file).
    Arguments only take effect on the first call.
    """
    global _global_logger

    if _global_logger is None:
        level = level or os.getenv("LOG_LEVEL", "INFO")
        if "log_dir" not in kwargs and os.getenv("VOTECHAIN_LOG_DIR"):
            kwargs["log_dir"] = Path(os.environ["VOTECHAIN_LOG_DIR"])
        kwargs.setdefault("enable_file", os.getenv("VOTECHAIN_LOG_TO_FILE", "1") != "0")
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Drop the process-wide logger so the next get_logger() builds a new one."""
    global _global_logger
    _global_logger = None
