"""
Execution layer: order lifecycle, submission and failure classification.

- OrderStateMachine: validated status transitions with an audit trail
- OrderSubmissionGateway: backend order calls mapped to submission outcomes
- RetryClassifier: retryable vs terminal submission failures
"""

from fundrouter.execution.order_gateway import OrderSubmissionGateway, OrderGatewayConfig
from fundrouter.execution.order_state_machine import OrderStateMachine, VALID_TRANSITIONS
from fundrouter.execution.retry_policy import (
    RetryClassifier,
    FailureKind,
    DEFAULT_RETRYABLE_PATTERNS,
)

__all__ = [
    "OrderSubmissionGateway",
    "OrderGatewayConfig",
    "OrderStateMachine",
    "VALID_TRANSITIONS",
    "RetryClassifier",
    "FailureKind",
    "DEFAULT_RETRYABLE_PATTERNS",
]
