"""
Structured logging for the proposal pricing service.

JSON lines in production (LOG_FORMAT=json), a compact text format for local
runs. Pricing code attaches calculation_id / request_id / fallback_used via
``extra=`` so every log line about one calculation can be correlated.
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional

# LogRecord attributes copied into the JSON entry when set via extra=
_EXTRA_FIELDS = (
    "calculation_id",
    "request_id",
    "duration_ms",
    "fallback_used",
    "http_method",
    "http_path",
    "http_status",
)

PRICING_LOGGER = "proposal-pricing"

_TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s calc=%(calc_short)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; correlation fields only when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        return json.dumps(entry, default=str)


class CalculationContextFilter(logging.Filter):
    """Adds calc_short (first 12 chars of calculation_id, or '-') for text output."""

    def filter(self, record: logging.LogRecord) -> bool:
        calculation_id = getattr(record, "calculation_id", None)
        record.calc_short = calculation_id[:12] if calculation_id else "-"
        return True


def setup_logging(level: str = "INFO", json_output: bool = True, engine_level: Optional[str] = None):
    """
    Configure root logging.

    Args:
        level:        Root log level name.
        json_output:  JSON lines when True, text otherwise.
        engine_level: Optional separate level for the "proposal-pricing.*"
                      engine loggers (e.g. DEBUG while tuning risk weights).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CalculationContextFilter())
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root.handlers = [handler]

    if engine_level:
        logging.getLogger(PRICING_LOGGER).setLevel(getattr(logging, engine_level.upper(), logging.INFO))

    # Suppress noisy loggers
    for name in ["uvicorn.access", "httpcore", "httpx"]:
        logging.getLogger(name).setLevel(logging.WARNING)
