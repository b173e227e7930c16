"""
play-sandbox: structured logging.

Every record, whether it comes from ``logging.getLogger`` or ``structlog.get_logger``,
ends up as one JSON object per line in ``{log_dir}/play.jsonl``. Callers never
block on disk: records are handed to a bounded queue and a ``QueueListener``
thread renders them through a structlog ``ProcessorFormatter``.

Fields bound with ``correlation_scope`` are captured on the calling thread.
Credentials in clone URLs, token assignments and sensitive keys are redacted
before rendering.
"""

from __future__ import annotations

import atexit
import contextvars
import copy
import json
import logging
import logging.handlers
import queue
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

from playground.constants import LOG_FILENAME

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]
EventDict = MutableMapping[str, Any]

REDACTED: Final[str] = "***REDACTED***"
_PACKAGE_LOGGER: Final[str] = "playground"

_SECRET_KEY_FRAGMENTS: Final[frozenset[str]] = frozenset(
    {
        "apikey",
        "api_key",
        "authorization",
        "cookie",
        "credential",
        "passphrase",
        "password",
        "private_key",
        "secret",
        "token",
    }
)

# Order matters: URL userinfo is scrubbed before the key=value rule sees it.
_SECRET_PATTERNS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (re.compile(r"(?i)\b([a-z][a-z0-9+.-]*://)[^\s/@]+@"), rf"\1{REDACTED}@"),
    (
        re.compile(
            r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*[^\s,;]+"
        ),
        rf"\1\2{REDACTED}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {REDACTED}"),
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), REDACTED),
)

_correlation: contextvars.ContextVar[Mapping[str, str]] = contextvars.ContextVar(
    "playground_correlation", default={}
)

_state_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how verbosely to write the JSON-lines log."""

    log_dir: Path | str
    logger_name: str = _PACKAGE_LOGGER
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = LOG_FILENAME
    log_to_stdout: bool = False
    redactor: LogRedactor | None = None


@dataclass(eq=False)
class StructuredLoggingHandle:
    """A running logging setup. ``shutdown`` drains the queue and closes the sinks."""

    logger: logging.Logger
    log_path: Path
    listener: logging.handlers.QueueListener
    queue_handler: _CorrelatingQueueHandler
    sinks: tuple[logging.Handler, ...]
    is_shutdown: bool = False
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def dropped_records(self) -> int:
        return self.queue_handler.dropped

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        pending = self.queue_handler.queue
        give_up_at = time.monotonic() + max(timeout_seconds, 0.0)
        while pending.unfinished_tasks and time.monotonic() < give_up_at:
            time.sleep(0.01)
        for sink in self.sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._close_lock:
            if self.is_shutdown:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self.listener.stop()
            self.logger.removeHandler(self.queue_handler)
            self.queue_handler.close()
            for sink in self.sinks:
                sink.close()
            self.is_shutdown = True


class _CorrelatingQueueHandler(logging.handlers.QueueHandler):
    """Queue records unformatted, stamped with the caller's correlation fields.

    A full queue drops the record and bumps ``dropped``.
    """

    def __init__(self, log_queue: queue.Queue[Any]) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        stamped = copy.copy(record)
        bound = _correlation.get()
        if bound:
            stamped.correlation = dict(bound)
        return stamped

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    log_dir: Path | str,
    logger_name: str = _PACKAGE_LOGGER,
    verbose: bool = False,
) -> logging.Logger:
    """Configure logging from the ``[observability]`` table and return the package logger."""

    options = observability_config or {}
    level = "DEBUG" if verbose else options.get("log_level", "INFO")
    handle = setup_structured_logging(
        LoggingConfig(
            log_dir=log_dir,
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(options.get("log_to_stdout", False)),
        )
    )
    configure_structlog()
    return handle.logger


def configure_structlog() -> None:
    """Hand ``structlog.get_logger`` events to stdlib logging for the JSON sink to render."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def build_json_formatter(
    redactor: LogRedactor | None = None,
) -> structlog.stdlib.ProcessorFormatter:
    """``ProcessorFormatter`` rendering both structlog events and plain stdlib records.

    A custom ``redactor`` runs first; ``default_log_redactor`` always runs after it.
    """

    def redact(_: object, __: str, event_dict: EventDict) -> EventDict:
        payload = _jsonable(dict(event_dict))
        if redactor is not None:
            payload = _jsonable(redactor(payload))
        cleaned = default_log_redactor(payload)
        return cleaned if isinstance(cleaned, dict) else {"message": str(cleaned)}

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[structlog.stdlib.ExtraAdder()],
        processors=[
            _stamp_record_fields,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            redact,
            structlog.processors.JSONRenderer(
                sort_keys=True, separators=(",", ":"), ensure_ascii=False
            ),
        ],
    )


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Route ``config.logger_name`` through a queue into ``{log_dir}/{log_filename}``.

    Any previously active setup is shut down first.
    """

    global _active, _atexit_hooked

    shutdown_logging()
    if config.queue_size < 1:
        raise ValueError("queue_size must be at least 1")
    filename = config.log_filename.strip()
    if not filename or Path(filename).name != filename:
        raise ValueError(f"log_filename must be a bare file name, got {config.log_filename!r}")
    level = config.level
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unsupported logging level {config.level!r}")

    log_path = Path(config.log_dir).expanduser() / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    formatter = build_json_formatter(config.redactor)
    for sink in sinks:
        sink.setFormatter(formatter)
        sink.setLevel(level)

    logger = logging.getLogger(config.logger_name)
    for stale in logger.handlers[:]:
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    queue_handler = _CorrelatingQueueHandler(queue.Queue(maxsize=config.queue_size))
    listener = logging.handlers.QueueListener(
        queue_handler.queue, *sinks, respect_handler_level=True
    )
    listener.start()
    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        log_path=log_path,
        listener=listener,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
    )
    with _state_lock:
        _active = handle
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True
    return handle


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _state_lock:
        return _active


def flush_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    target = handle or get_active_logging_handle()
    if target is not None:
        target.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Drain and close ``handle``, or the active setup when none is given."""

    global _active

    target = handle or get_active_logging_handle()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    with _state_lock:
        if _active is target:
            _active = None


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind fields such as ``sandbox`` or ``command`` to every record logged in scope.

    A ``None`` or blank value unbinds the field for the duration of the scope.
    """

    bound = get_correlation_context()
    for name, value in fields.items():
        text = (value or "").strip()
        if text:
            bound[name] = text
        else:
            bound.pop(name, None)
    token = _correlation.set(bound)
    try:
        yield
    finally:
        _correlation.reset(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Redact sensitive keys at any depth and credentials embedded in strings."""

    if isinstance(value, str):
        for pattern, replacement in _SECRET_PATTERNS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: REDACTED if _looks_secret(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _stamp_record_fields(_: object, __: str, event_dict: EventDict) -> EventDict:
    record = event_dict.get("_record")
    event_dict.pop("correlation", None)
    if isinstance(record, logging.LogRecord):
        created = datetime.fromtimestamp(record.created, tz=UTC)
        event_dict["timestamp"] = created.isoformat(timespec="milliseconds").replace(
            "+00:00", "Z"
        )
        event_dict["level"] = record.levelname
        event_dict["logger"] = record.name
        for name, value in sorted(getattr(record, "correlation", {}).items()):
            event_dict.setdefault(name, value)
    return event_dict


def _jsonable(value: object) -> JSONValue:
    """Plain JSON data for ``value``; paths become POSIX strings, others their ``repr``."""

    def fallback(item: object) -> object:
        if isinstance(item, Path):
            return item.as_posix()
        if isinstance(item, bytes):
            return item.decode("utf-8", errors="replace")
        if isinstance(item, (set, frozenset)):
            return sorted(item, key=repr)
        return repr(item)

    return json.loads(json.dumps(value, default=fallback))


def _looks_secret(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in _SECRET_KEY_FRAGMENTS)


__all__ = [
    "LogRedactor",
    "LoggingConfig",
    "REDACTED",
    "StructuredLoggingHandle",
    "build_json_formatter",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
