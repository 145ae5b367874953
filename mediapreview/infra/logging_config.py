# mediapreview/infra/logging_config.py
"""
Logging setup for every entry point (HTTP app, Lambda, CLI).

Records may carry preview context (request id, run id, pipeline state);
``LogContext`` attaches it and both formatters render it.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from urllib.parse import urlsplit

CONTEXT_FIELDS = ("request_id", "run_id", "state")

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "aiohttp.access": logging.WARNING,
    "PIL": logging.WARNING,
    "asyncio": logging.WARNING,
}


def _context_of(record: logging.LogRecord) -> dict:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line (Lambda / production)"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context_of(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Plain text for terminals, context as short key=value pairs"""

    SHORT_NAMES = {"request_id": "req", "run_id": "run", "state": "state"}

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s %(name)s%(context)s - %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        context = _context_of(record)
        record.context = (
            " [" + " ".join(f"{self.SHORT_NAMES[k]}={str(v)[:12]}" for k, v in context.items()) + "]"
            if context else ""
        )
        return super().format(record)


def setup_logging(level: str = "INFO", use_json: bool = False) -> None:
    """
    Replace root handlers with a single stdout handler.

    Args:
        level: Log level name
        use_json: JSON lines instead of console text
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).debug(f"Logging configured: level={level}, json={use_json}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext(logging.LoggerAdapter):
    """
    Logger adapter carrying preview context.

    Context set here is merged into each record's ``extra``; values in a
    call's own ``extra`` win. ``set()`` updates the context in place
    (the pipeline uses it to track the current state).
    """

    def __init__(
            self,
            logger: logging.Logger,
            request_id: str | None = None,
            run_id: str | None = None,
    ):
        super().__init__(logger, {})
        self.set(request_id=request_id, run_id=run_id)

    def set(self, **fields) -> None:
        for name, value in fields.items():
            if value is None:
                self.extra.pop(name, None)
            else:
                self.extra[name] = value

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def mask_url(url: str) -> str:
    """Strip credentials, query and fragment from a URL before logging it.

    ``mask_url("https://u:p@cdn.example.com/a.png?token=x")`` gives
    ``"https://cdn.example.com/a.png?…"``.
    """
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    masked = f"{parts.scheme}://{host}{parts.path}"
    if parts.query or parts.fragment:
        masked += "?…"
    return masked
