"""Logging for the Kaleido controller.

Every module logs through a ``KaleidoLogger`` obtained from ``get_logger``.
Call sites pass structured context as ``extra={...}``; both output formats
render it next to the message, together with the correlation ID of the
command exchange being processed (see ``correlation.py``).

Outputs are picked by ``KALEIDO_LOG_FORMAT`` (``human``, ``json`` or
``both``). Human-readable lines go to ``KALEIDO_LOG_HUMAN_OUTPUT`` (stdout,
stderr or a file path), JSON lines to ``KALEIDO_LOG_JSON_FILE``.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

from kaleido_controller.correlation import get_correlation_id

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "KaleidoLogger",
    "get_logger",
    "set_package_level",
]

PACKAGE_LOGGER = "kaleido_controller"
NO_CORRELATION = "-"

# KaleidoLogger method -> _log -> logging.Logger.log
_CALLER_STACKLEVEL = 3


def _record_context(record: logging.LogRecord) -> Mapping[str, object]:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping):
        return cast("Mapping[str, object]", extra_data)
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "location": f"{record.module}:{record.lineno}",
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _record_context(record)
        if context:
            entry["context"] = dict(context)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``time LEVEL [module:line] [correlation] > message | key=value ...``"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] [%(correlation_id)s] > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = get_correlation_id() or NO_CORRELATION
        line = super().format(record)
        context = _record_context(record)
        if not context:
            return line
        return " | ".join([line, *(f"{key}={value}" for key, value in context.items())])


def _open_destination(destination: str | Path) -> logging.Handler:
    """Stream handler for ``stdout``/``stderr``, file handler for anything else.

    Falls back to stderr when the file cannot be opened.
    """
    if destination == "stdout":
        return logging.StreamHandler(sys.stdout)
    if destination == "stderr":
        return logging.StreamHandler(sys.stderr)
    path = Path(destination)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a", encoding="utf-8")
    except OSError as e:
        print(f"Warning: cannot open log file {path}: {e}", file=sys.stderr)  # noqa: T201
        return logging.StreamHandler(sys.stderr)


class KaleidoLogger:
    """Wrapper around ``logging.Logger`` that accepts structured ``extra`` context.

    ``logging`` loggers are process-wide, so handlers are attached only by the
    first wrapper created for a name.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
        debug: bool = False,
    ) -> None:
        """Initialize KaleidoLogger.

        Args:
            name: Logger name (the module's ``__name__``)
            log_format: "human", "json" or "both"
            json_file: Destination of JSON lines; JSON output is off without one
            human_output: "stdout", "stderr" or a file path
            debug: Start at DEBUG instead of INFO

        """
        self.name: str = name
        self.log_format: str = log_format
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)

        if self.logger.handlers:
            return
        if log_format in ("json", "both") and json_file:
            self._attach(_open_destination(json_file), JSONFormatter())
        if log_format in ("human", "both"):
            self._attach(_open_destination(human_output or "stdout"), HumanReadableFormatter())

    def _attach(self, handler: logging.Handler, formatter: logging.Formatter) -> None:
        handler.setFormatter(formatter)
        handler.setLevel(self.logger.level)
        self.logger.addHandler(handler)

    def _log(
        self,
        level: int,
        msg: str,
        *args: object,
        extra: Mapping[str, object] | None = None,
        exc_info: bool = False,
    ) -> None:
        self.logger.log(
            level,
            msg,
            *args,
            extra={"extra_data": dict(extra)} if extra else None,
            exc_info=exc_info,
            stacklevel=_CALLER_STACKLEVEL,
        )

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def critical(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.CRITICAL, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """ERROR with the traceback of the exception being handled."""
        self._log(logging.ERROR, msg, *args, extra=extra, exc_info=True)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> KaleidoLogger:
    """Return a ``KaleidoLogger`` configured from the ``KALEIDO_LOG_*`` settings unless overridden."""
    # Read at call time: main reloads const after applying a dotenv file
    from kaleido_controller import const  # noqa: PLC0415

    return KaleidoLogger(
        name=name,
        log_format=log_format or const.KALEIDO_LOG_FORMAT,
        json_file=json_file or const.KALEIDO_LOG_JSON_FILE,
        human_output=human_output or const.KALEIDO_LOG_HUMAN_OUTPUT,
        debug=const.KALEIDO_DEBUG,
    )


def set_package_level(level: int, package: str = PACKAGE_LOGGER) -> None:
    """Set ``level`` on every logger under ``package`` and on their handlers."""
    prefix = f"{package}."
    for name, candidate in list(logging.root.manager.loggerDict.items()):
        if not isinstance(candidate, logging.Logger):
            continue
        if name != package and not name.startswith(prefix):
            continue
        candidate.setLevel(level)
        for handler in candidate.handlers:
            handler.setLevel(level)
