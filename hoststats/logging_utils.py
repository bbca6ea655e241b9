from __future__ import annotations

import logging
import sys

TRACE_LEVEL = 5

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _trace(self: logging.Logger, message: str, *args: object, **kwargs: object) -> None:
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


def _build_handler() -> logging.Handler:
    # stdout carries the JSON snapshots, so logs always go to stderr.
    handler = logging.StreamHandler(sys.stderr)
    try:
        from colorlog import ColoredFormatter  # type: ignore

        handler.setFormatter(
            ColoredFormatter(
                "%(log_color)s" + LOG_FORMAT,
                log_colors={
                    "TRACE": "cyan",
                    "DEBUG": "blue",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "red,bg_white",
                },
            )
        )
    except ImportError:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(level: int) -> None:
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    setattr(logging.Logger, "trace", _trace)
    logging.basicConfig(level=level, handlers=[_build_handler()], force=True)
    # asyncio reports slow callbacks at DEBUG; only interesting when tracing.
    if level > TRACE_LEVEL:
        logging.getLogger("asyncio").setLevel(max(level, logging.INFO))


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    name = fallback.upper()
    if name == "TRACE":
        return TRACE_LEVEL
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO
