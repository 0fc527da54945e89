"""
Gateway package: the interceptor pipeline every outbound call passes through.
"""

from .pipeline import RequestConfig, ResponseClass, classify_response, parse_retry_after
from .request_gateway import RequestGateway, response_json

__all__ = [
    "RequestConfig",
    "RequestGateway",
    "ResponseClass",
    "classify_response",
    "parse_retry_after",
    "response_json",
]
