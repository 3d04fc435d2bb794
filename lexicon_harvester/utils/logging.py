"""
Logging configuration and utilities.

Console logging for every run, optional daily-rotated log files, and a
retention policy that removes rotated files older than ``retention_days``.
"""

import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import Optional
from datetime import datetime, timedelta
import threading

import schedule
import structlog


DEFAULT_LOGS_DIR = Path("logs")

_cleanup_thread: Optional[threading.Thread] = None
_cleanup_lock = threading.Lock()


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    retention_days: int = 7
) -> None:
    """
    Set up logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        retention_days: Number of days to retain rotated log files
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # Clear existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.TimedRotatingFileHandler(
            log_path,
            when='midnight',
            interval=1,
            backupCount=retention_days,
            encoding='utf-8'
        )
        file_handler.suffix = "%Y-%m-%d"

        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

        _start_log_cleanup_scheduler(log_path.parent, retention_days)

    # Event loop debug noise
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Standard library logger
    """
    return logging.getLogger(name)


def configure_structlog() -> None:
    """Route structlog events through the standard library handlers as JSON."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False)
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_event_logger(name: str):
    """Structured logger for machine-readable run events."""
    return structlog.get_logger(name)


def get_business_logger(
    business_name: str,
    log_level: str = "INFO",
    logs_dir: Optional[Path] = None
) -> logging.Logger:
    """
    Get a logger that also writes to a per-business log file.

    Args:
        business_name: Business name (e.g. 'pipeline', 'crawler_hanzii')
        log_level: Logging level for the file handler
        logs_dir: Directory for the log file (default: ./logs)

    Returns:
        Configured logger; messages still propagate to the root handlers
    """
    business_logs = {
        "pipeline": "pipeline.log",
        "crawler_hanzii": "crawler_hanzii.log",
        "session_pool": "session_pool.log",
        "dataset": "dataset.log",
    }

    log_name = business_logs.get(business_name, f"{business_name}.log")
    logger = logging.getLogger(f"business.{business_name}")

    # Already configured
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, log_level.upper()))

    log_path = (logs_dir or DEFAULT_LOGS_DIR) / log_name
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_path,
        when='midnight',
        interval=1,
        backupCount=7,
        encoding='utf-8',
        delay=True
    )
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    logger.addHandler(file_handler)

    return logger


def _start_log_cleanup_scheduler(logs_dir: Path, retention_days: int) -> None:
    """Start the daily log cleanup job (once per process)."""
    global _cleanup_thread

    with _cleanup_lock:
        if _cleanup_thread is not None and _cleanup_thread.is_alive():
            return

        def cleanup_job():
            try:
                cleanup_old_logs(logs_dir, retention_days)
            except OSError as e:
                logging.getLogger(__name__).warning(f"Log cleanup failed: {e}")

        schedule.every().day.at("02:00").do(cleanup_job)

        def run_scheduler():
            while True:
                schedule.run_pending()
                time.sleep(60)

        _cleanup_thread = threading.Thread(target=run_scheduler, name="LogCleanup", daemon=True)
        _cleanup_thread.start()


def cleanup_old_logs(logs_dir: Optional[Path] = None, retention_days: int = 7) -> int:
    """
    Remove log files older than the retention period.

    Args:
        logs_dir: Log directory path
        retention_days: Number of days to keep

    Returns:
        Number of files removed
    """
    logs_dir = logs_dir or DEFAULT_LOGS_DIR

    if not logs_dir.exists():
        return 0

    cleaned_count = 0
    cutoff_date = datetime.now() - timedelta(days=retention_days)

    for log_file in logs_dir.glob("*.log*"):
        if not log_file.is_file():
            continue

        file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
        if file_mtime < cutoff_date:
            log_file.unlink()
            cleaned_count += 1

    if cleaned_count > 0:
        logging.getLogger(__name__).info(f"Log cleanup removed {cleaned_count} files from {logs_dir}")

    return cleaned_count


# Events go through stdlib handlers even before setup_logging runs
configure_structlog()
