"""Structured JSON logging for jobs."""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName
        }
        if hasattr(record, "duration"):
            log_entry["duration_seconds"] = record.duration
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def setup_job_logging(job_name: str, log_dir: Path = Path("./logs"), level: int = logging.INFO):
    """
    Send logs to ``<log_dir>/<job_name>.log`` as JSON lines and to the console as text.

    Safe to call more than once; handlers are only added the first time.
    """
    root_logger = logging.getLogger()
    if getattr(root_logger, "_truckcng_configured", False):
        return

    log_dir.mkdir(exist_ok=True)
    file_handler = logging.FileHandler(log_dir / f"{job_name}.log", encoding="utf-8")
    file_handler.setFormatter(JSONFormatter())

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger._truckcng_configured = True
