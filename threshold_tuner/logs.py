from __future__ import annotations

import logging
import sys
from typing import Any, Mapping, Optional, TextIO

import yaml

from .constants import LOG_CONTEXT_KEY
from .errors import InvariantViolation

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-5.5s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def to_yaml(data: Any) -> str:
    """YAML rendering used for audit output; failing to render is a bug, not bad input."""
    try:
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)
    except yaml.YAMLError as e:
        logger.critical("Failed to render YAML", extra={LOG_CONTEXT_KEY: {"data": repr(data), "error": str(e)}})
        raise InvariantViolation(f"failed to render YAML: {e}") from e


def format_context(context: Mapping[str, Any]) -> str:
    inline = []
    blocks = []
    for key, value in context.items():
        if isinstance(value, str) and "\n" in value:
            body = "\n".join(f"    {line}" for line in value.rstrip("\n").splitlines())
            blocks.append(f"  {key}:\n{body}")
        else:
            inline.append(f"{key}={value}")

    text = " ".join(inline)
    if blocks:
        text = "\n".join([text, *blocks]) if text else "\n" + "\n".join(blocks)
    return text


class ContextFormatter(logging.Formatter):
    """Appends the structured `extra={"tuner": {...}}` context to each message."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, LOG_CONTEXT_KEY, None)
        if isinstance(context, Mapping) and context:
            rendered = format_context(context)
            message = f"{message} {rendered}" if not rendered.startswith("\n") else message + rendered
        return message


def setup_logging(verbose: bool = False, stream: Optional[TextIO] = None) -> None:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ContextFormatter(LOG_FORMAT, DATE_FORMAT))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # urllib3 logs every retry at WARNING; keep its connection chatter out of INFO output
    logging.getLogger("urllib3").setLevel(logging.DEBUG if verbose else logging.WARNING)
