"""Log formatting for VM-set lookups and backend pool updates.

Records carry their node, scale set or pool through ``extra=``. Both
formatters keep those fields, and the JSON one also unpacks the Azure
error attached to a record so a failed ARM call can be filtered on its
status code or failed nodes.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import LoggingConfig
from .exceptions import AggregateError, CloudAPIError, NodeOperationError

CONTEXT_FIELDS = (
    "node", "backend_pool", "vm_set", "resource_group",
    "operation", "succeeded", "elapsed_seconds",
)

SDK_LOGGERS = ("azure", "azure.core", "azure.identity", "msal", "urllib3")


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None}


def error_fields(exc: BaseException) -> dict[str, Any]:
    """Structured attributes of a VM-set error, empty for anything else."""
    if isinstance(exc, CloudAPIError):
        fields = {"status_code": exc.status_code, "arm_operation": exc.operation, "arm_resource": exc.name}
        return {k: v for k, v in fields.items() if v not in (None, "")}
    if isinstance(exc, AggregateError):
        return {"failed_nodes": exc.node_names, "error_count": len(exc.errors)}
    if isinstance(exc, NodeOperationError):
        return {"failed_nodes": [exc.node_name]}
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context(record))

        if record.exc_info and record.exc_info[1]:
            payload["exception"] = self.formatException(record.exc_info)
            payload.update(error_fields(record.exc_info[1]))

        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Plain lines with the record's context appended as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        head, sep, trace = line.partition("\n")
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{head} {pairs}{sep}{trace}"


def configure_logging(config: LoggingConfig) -> None:
    """Install a single stderr handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(logging.getLevelName(config.level.upper()))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if config.format == "json" else TextFormatter())
    root.addHandler(handler)

    # the SDK logs every HTTP request at INFO
    sdk_level = logging.getLevelName(config.azure_sdk_level.upper())
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)
