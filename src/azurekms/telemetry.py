from __future__ import annotations

from contextlib import contextmanager
import json
import logging
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None) -> Generator[Span, None, None]:
    tracer = trace.get_tracer("azurekms")
    with tracer.start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
        if attributes:
            span_set_attributes(span, attributes)
        yield span


def span_set_attributes(span: Span, attributes: dict[str, Any]) -> None:
    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, (str, bool, int, float)):
            span.set_attribute(key, value)
            continue
        span.set_attribute(key, str(value))


def span_record_error(span: Span, error: Exception, failure_type: str) -> None:
    span.set_attribute("failure_type", failure_type)
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, str(error)))


def telemetry_tags(
    *,
    operation: str | None = None,
    vault_url: str | None = None,
    key_name: str | None = None,
    key_version: str | None = None,
    algorithm: str | None = None,
    key_type: str | None = None,
    protection_level: str | None = None,
    timeout_seconds: float | None = None,
    latency_ms: int | None = None,
    failure_type: str | None = None,
) -> dict[str, str | int | float]:
    tags: dict[str, str | int | float | None] = {
        "kms.operation": operation,
        "kms.vault_url": vault_url,
        "kms.key_name": key_name,
        "kms.key_version": key_version,
        "kms.algorithm": algorithm,
        "kms.key_type": key_type,
        "kms.protection_level": protection_level,
        "kms.timeout_seconds": timeout_seconds,
        "latency_ms": latency_ms,
        "failure_type": failure_type,
    }
    return {key: value for key, value in tags.items() if value is not None}


def log_event(logger: logging.Logger, event: str, **fields: object) -> None:
    payload = {"event": event, **{key: value for key, value in fields.items() if value is not None}}
    logger.info("%s", json.dumps(payload, sort_keys=True, default=str))
