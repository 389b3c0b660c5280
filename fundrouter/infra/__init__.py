"""
Infrastructure package.

HTTP collaborators for the recharge backend and logging configuration.
"""

from fundrouter.infra.api_client import ApiClient
from fundrouter.infra.endpoint_directory import EndpointDirectory
from fundrouter.infra.logging_cfg import build_logger, log_event
from fundrouter.infra.order_service import OrderService
from fundrouter.infra.upload_service import UploadService

__all__ = [
    "ApiClient",
    "EndpointDirectory",
    "build_logger",
    "log_event",
    "OrderService",
    "UploadService",
]
