from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_ROOT_LOGGER = "stocksync"


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    root = logging.getLogger(_ROOT_LOGGER)
    if root.handlers:
        return logger
    root.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    return logger


def configure_logging(level: str) -> None:
    get_logger(_ROOT_LOGGER).setLevel(level.upper())


def log_action(
    logger: logging.Logger,
    module: str,
    action: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    record: dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": logging.getLevelName(level),
        "module": module,
        "action": action,
        "outcome": outcome,
    }
    record.update({key: value for key, value in context.items() if value is not None})
    logger.log(level, json.dumps(record, default=str))
