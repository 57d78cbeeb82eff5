"""OpenTelemetry configuration and utilities."""
import functools
import os
from typing import Any, Callable, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.status import Status, StatusCode

from persistence.core.config import settings

# Type variables for generic decorators
F = TypeVar("F", bound=Callable[..., Any])


def is_tracing_enabled() -> bool:
    """Check if tracing should be enabled.

    Tracing is disabled during tests and when explicitly disabled in config.
    """
    if "pytest" in os.environ.get("_", "") or os.environ.get("PYTEST_CURRENT_TEST"):
        return False

    return settings.otel_enabled


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing if enabled.

    Returns:
        True if a tracer provider was installed, False if tracing is disabled
    """
    if not is_tracing_enabled():
        return False

    resource = Resource.create({
        "service.name": settings.otel_service_name,
        "service.version": "0.1.0",
        "deployment.environment": settings.environment,
        "service.namespace": "marketplace",
        "service.instance.id": f"{settings.otel_service_name}-1",
    })

    tracer_provider = TracerProvider(resource=resource)

    otlp_exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        insecure=True,
        headers={}
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(tracer_provider)
    return True


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given module name."""
    return trace.get_tracer(name)


# Tracing Decorators

def trace_async(
    span_name: str | None = None,
    tracer_name: str | None = None,
    **span_attributes: Any
) -> Callable[[F], F]:
    """Decorator to trace async functions with OpenTelemetry spans.

    Args:
        span_name: Custom span name. If None, uses module.function_name
        tracer_name: Custom tracer name. If None, uses function's module
        **span_attributes: Additional span attributes to set

    Example:
        @trace_async("cache.check_connection", cache_type="redis")
        async def check_cache_connection() -> bool:
            return await cache_client.ping()
    """
    def decorator(func: F) -> F:
        if not is_tracing_enabled():
            return func

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = get_tracer(tracer_name or func.__module__)
            name = span_name or f"{func.__module__}.{func.__name__}"

            with tracer.start_as_current_span(name) as span:
                for key, value in span_attributes.items():
                    if value is not None:
                        span.set_attribute(key, str(value))

                try:
                    result = await func(*args, **kwargs)
                    span.set_status(Status(StatusCode.OK))
                    return result
                except Exception as exc:
                    span.record_exception(exc)
                    span.set_status(Status(StatusCode.ERROR, str(exc)))
                    raise

        return async_wrapper  # type: ignore
    return decorator


def trace_database(operation: str | None = None) -> Callable[[F], F]:
    """Specialized decorator for document store operations.

    Args:
        operation: Store operation type. If None, uses function name

    Example:
        @trace_database()
        async def check_database_connection() -> bool:
            return True
    """
    def decorator(func: F) -> F:
        op_name = operation or func.__name__
        return trace_async(
            span_name=op_name,
            **{
                "db.operation": op_name,
                "db.system": "document-store",
                "component": "database"
            }
        )(func)
    return decorator


def trace_cache(operation: str | None = None) -> Callable[[F], F]:
    """Specialized decorator for cache operations.

    Args:
        operation: Cache operation type. If None, uses function name
    """
    def decorator(func: F) -> F:
        op_name = operation or func.__name__
        return trace_async(
            span_name=op_name,
            **{
                "cache.operation": op_name,
                "cache.system": "redis",
                "component": "cache"
            }
        )(func)
    return decorator
