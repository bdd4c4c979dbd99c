"""push_dispatch logging configuration.

Log events are structured (structlog) and rendered through the stdlib
``logging`` handlers, so host applications keep control of where output goes.
The level comes from ``PUSH_DISPATCH_LOG_LEVEL`` (default ``INFO``).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import structlog


def setup_logging(level: Optional[str] = None, *, json_output: bool = False) -> None:
    """Configure push_dispatch logging.

    Args:
        level: Optional override for `PUSH_DISPATCH_LOG_LEVEL`.
        json_output: Render events as JSON lines instead of key=value console output.
    """
    if level:
        os.environ["PUSH_DISPATCH_LOG_LEVEL"] = level
    level_name = os.getenv("PUSH_DISPATCH_LOG_LEVEL", "INFO").upper()

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level_name)
    logging.getLogger("push_dispatch").setLevel(level_name)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
