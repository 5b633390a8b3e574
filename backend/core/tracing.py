"""
OpenTelemetry spans around generation work.

Tracing is an optional extra (``pip install hooksmith[otel]``). Without it,
or with OTEL_ENABLED off, start_span() yields None and costs nothing.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Optional

from backend.core.config import settings

try:
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
    from opentelemetry.trace import Status, StatusCode
except ImportError:  # pragma: no cover - otel extra not installed
    trace = None

SERVICE_NAME = "hooksmith"

# Span attribute values OTel accepts as-is
_SCALARS = (str, bool, int, float)


@dataclass
class _TracingState:
    tracer: Any = None
    exporter: Any = None

    @property
    def active(self) -> bool:
        return self.tracer is not None


_state = _TracingState()


def setup_tracing(enabled: Optional[bool] = None, exporter_name: Optional[str] = None) -> None:
    """Install (or tear down) the tracer. exporter_name: "console" or "memory"."""
    global _state
    flag = settings.OTEL_ENABLED if enabled is None else bool(enabled)
    if trace is None or not flag:
        _state = _TracingState()
        return

    choice = exporter_name or os.getenv("OTEL_EXPORTER", settings.OTEL_EXPORTER)
    exporter = InMemorySpanExporter() if choice == "memory" else ConsoleSpanExporter()
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    _state = _TracingState(tracer=provider.get_tracer(SERVICE_NAME), exporter=exporter)


def tracing_enabled() -> bool:
    return _state.active


def _span_attributes(attributes: Optional[Mapping[str, object]]) -> dict:
    cleaned = {}
    for key, value in (attributes or {}).items():
        if value is None:
            continue
        cleaned[key] = value if isinstance(value, _SCALARS) else str(value)
    return cleaned


@contextmanager
def start_span(name: str, attributes: Optional[Mapping[str, object]] = None) -> Iterator[Any]:
    """Span around a block; yields None when tracing is off.

    An exception leaving the block is recorded on the span and re-raised.
    """
    if not _state.active:
        yield None
        return
    with _state.tracer.start_as_current_span(
        name,
        attributes=_span_attributes(attributes),
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except BaseException as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
            raise


def get_exported_spans() -> List[Any]:
    """Finished spans, when the in-memory exporter is installed."""
    exporter = _state.exporter
    if exporter is not None and hasattr(exporter, "get_finished_spans"):
        return list(exporter.get_finished_spans())
    return []
