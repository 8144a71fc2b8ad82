"""Tracing for change-request operations.

Submissions, approvals, rejections and asset operations are logged as one
JSON line each, carrying the trace id of the operation that caused them. An
operator can follow a request from submission to its terminal state and
re-drive it with the same request id after a failure.
"""

from __future__ import annotations

import json
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator


@dataclass
class Span:
    name: str
    trace_id: str
    span_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    start_ns: int = field(default_factory=time.time_ns)
    end_ns: int | None = None
    status: str = 'ok'
    error: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def end(self, error: Exception | None = None) -> None:
        self.end_ns = time.time_ns()
        if error is not None:
            self.status = 'error'
            self.error = type(error).__name__

    @property
    def duration_ms(self) -> float | None:
        if self.end_ns is None:
            return None
        return (self.end_ns - self.start_ns) / 1_000_000.0


def new_trace_id() -> str:
    return uuid.uuid4().hex


def log_event(event: str, *, trace_id: str, span: Span | None = None, **fields: Any) -> None:
    payload: dict[str, Any] = {
        'event': event,
        'trace_id': trace_id,
        'at': datetime.now(timezone.utc).isoformat(),
        **fields,
    }
    if span is not None:
        payload['span'] = {
            'name': span.name,
            'span_id': span.span_id,
            'duration_ms': span.duration_ms,
            'status': span.status,
            'error': span.error,
            'attributes': span.attributes,
        }
    # models and datetimes in fields fall back to str
    print(json.dumps(payload, ensure_ascii=False, default=str))


@contextmanager
def traced(name: str, *, trace_id: str, **attributes: Any) -> Iterator[Span]:
    """Time a block and log ``span.end`` when it exits, including on failure."""
    span = Span(name=name, trace_id=trace_id, attributes=attributes)
    try:
        yield span
    except Exception as exc:
        span.end(exc)
        log_event('span.end', trace_id=trace_id, span=span)
        raise
    span.end()
    log_event('span.end', trace_id=trace_id, span=span)
