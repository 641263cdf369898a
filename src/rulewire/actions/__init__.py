"""Action execution: transports, retry policy and the executor."""

from rulewire.actions.clock import Clock, SystemClock
from rulewire.actions.executor import ActionExecutor, transform_data, validate_action
from rulewire.actions.retry import RetryPolicy
from rulewire.actions.transport import (
    HTTPClientConfig,
    RequestsTransport,
    Transport,
    TransportResponse,
    create_session,
)

__all__ = [
    "ActionExecutor",
    "Clock",
    "HTTPClientConfig",
    "RequestsTransport",
    "RetryPolicy",
    "SystemClock",
    "Transport",
    "TransportResponse",
    "create_session",
    "transform_data",
    "validate_action",
]
