"""Logging setup: readable console output plus JSON files for log shipping."""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pythonjsonlogger import jsonlogger

from farmaprice.core.config import settings


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps level, logger and source location."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat() + "Z"
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["source"] = f"{record.filename}:{record.lineno}"


def setup_logging(log_dir: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Configure the root logger.

    Console output is always enabled. When a log directory is given (argument or
    LOG_DIR setting) an ``app.log`` JSON file and an errors-only ``error.log``
    are written there as well.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    directory = log_dir or settings.LOG_DIR
    if directory:
        logs_path = Path(directory)
        logs_path.mkdir(parents=True, exist_ok=True)
        json_formatter = ServiceJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

        json_handler = logging.FileHandler(logs_path / "app.log")
        json_handler.setFormatter(json_formatter)
        root_logger.addHandler(json_handler)

        error_handler = logging.FileHandler(logs_path / "error.log")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(json_formatter)
        root_logger.addHandler(error_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger
