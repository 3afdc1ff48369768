"""
Trading Engine - Logging Setup.

One stdout handler on the root logger, JSON-shaped or
pipe-delimited text. Modules log through
logging.getLogger(__name__) and never configure handlers.
"""

import json
import logging
import sys
from typing import Optional


LOG_FORMATS = ("json", "text")


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    instance_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up ledger logging.

    Args:
        level: Log level name
        log_format: Output format (json or text)
        instance_id: Optional process identifier stamped on every line

    Returns:
        The trading_engine package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "instance_id": instance_id or "",
            })
        )
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {instance_id or '-'} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("trading_engine")
