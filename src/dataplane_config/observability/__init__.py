"""Public observability primitives: structured logging and the update bus."""

from dataplane_config.observability.events import (
    BusEvent,
    DispatchError,
    EventBus,
    Subscriber,
)
from dataplane_config.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    get_correlation_context,
    is_sensitive_key,
    setup_structured_logging,
    severity_listener,
    severity_to_level,
    shutdown_logging,
)

__all__ = [
    "BusEvent",
    "DispatchError",
    "EventBus",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "Subscriber",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "is_sensitive_key",
    "setup_structured_logging",
    "severity_listener",
    "severity_to_level",
    "shutdown_logging",
]
