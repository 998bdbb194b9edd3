from asyncio import iscoroutinefunction
from enum import Enum
from functools import wraps
from os import environ

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry import metrics, trace
from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor
from opentelemetry.metrics._internal.instrument import Counter, Gauge
from opentelemetry.semconv.attributes import service_attributes
from opentelemetry.trace.span import INVALID_SPAN
from opentelemetry.util.types import Attributes, AttributeValue
from structlog.contextvars import bind_contextvars

MODULE_NAME = "line-todo-reminder"
VERSION = environ.get("VERSION", "0.0.0-unknown")


class SpanAttributeEnum(str, Enum):
    """
    OpenTelemetry attributes.

    These attributes are used to track a reminder in the logs and metrics.
    """

    OWNER_ID = "reminder.owner_id"
    """Identifier of the user owning the reminder."""
    REMINDER_ID = "reminder.id"
    """Technical reminder identifier."""
    SCAN_CANDIDATES = "scan.candidates"
    """Number of reminders selected by a scan."""

    def attribute(
        self,
        value: AttributeValue,
    ) -> None:
        """
        Set an attribute on the current span.
        """
        # Enrich logging
        bind_contextvars(**{self.value: value})

        # Enrich span
        span = trace.get_current_span()
        if span == INVALID_SPAN:
            return
        span.set_attribute(self.value, value)


class SpanMeterEnum(str, Enum):
    REMINDER_NOTIFIED = "reminder.notified"
    """Notifications sent and marked."""
    REMINDER_NOTIFY_FAILED = "reminder.notify.failed"
    """Notifications failed, reminder is left for the next scan."""
    SCAN_LATENCY = "scan.latency"
    """Scan duration in seconds."""

    def counter(
        self,
        unit: str,
    ) -> Counter:
        """
        Create a counter metric to track a span counter.
        """
        return meter.create_counter(
            description=self.__doc__ or "",
            name=self.value,
            unit=unit,
        )

    def gauge(
        self,
        unit: str,
    ) -> Gauge:
        """
        Create a gauge metric to track a span counter.
        """
        return meter.create_gauge(
            description=self.__doc__ or "",
            name=self.value,
            unit=unit,
        )


try:
    # Configure Azure Application Insights exporter
    configure_azure_monitor()
    # Instrument aiohttp, used by the LINE notifier
    AioHttpClientInstrumentor().instrument()
except ValueError as e:
    print(  # noqa: T201
        "Azure Application Insights instrumentation failed, likely due to a missing APPLICATIONINSIGHTS_CONNECTION_STRING environment variable.",
        e,
    )

# Attributes
_default_attributes = {
    service_attributes.SERVICE_NAME: MODULE_NAME,
    service_attributes.SERVICE_VERSION: VERSION,
}

# Create a tracer and meter that will be used across the application
tracer = trace.get_tracer(
    attributes=_default_attributes,
    instrumenting_module_name=MODULE_NAME,
)
meter = metrics.get_meter(
    name=MODULE_NAME,
)

# Init metrics
reminder_notified = SpanMeterEnum.REMINDER_NOTIFIED.counter("reminders")
reminder_notify_failed = SpanMeterEnum.REMINDER_NOTIFY_FAILED.counter("reminders")
scan_latency = SpanMeterEnum.SCAN_LATENCY.gauge("s")


def gauge_set(
    metric: Gauge,
    value: float | int,
) -> None:
    metric.set(
        amount=value,
        attributes=_default_attributes,
    )


def counter_add(
    metric: Counter,
    value: float | int,
) -> None:
    """
    Add to a counter metric.

    Context attributes are not forwarded, reminder and owner ids would explode the metric cardinality. They stay on spans and logs.
    """
    metric.add(
        amount=value,
        attributes=_default_attributes,
    )


def start_as_current_span(
    name: str,
    attributes: Attributes = None,
):
    """
    Decorator to start an OTEL span for the function and set it as the current.
    """

    def _wrapper(func):
        @wraps(func)
        def _inner(*args, **kwargs):
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                return func(*args, **kwargs)

        @wraps(func)
        async def _async_inner(*args, **kwargs):
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                return await func(*args, **kwargs)

        return _async_inner if iscoroutinefunction(func) else _inner

    return _wrapper
