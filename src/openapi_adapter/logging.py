"""Logging helpers with redaction."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping


_SENSITIVE_KEYS = re.compile(
    r"(token|secret|api[_-]?key|password|authorization|cookie)", re.IGNORECASE
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def redact_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    redacted: Dict[str, Any] = {}
    for key, value in payload.items():
        if _SENSITIVE_KEYS.search(str(key)):
            redacted[key] = "***REDACTED***"
        else:
            redacted[key] = _redact_value(value)
    return redacted


def _redact_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return redact_payload(value)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value
