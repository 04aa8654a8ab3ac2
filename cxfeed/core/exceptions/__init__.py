"""Exception handling module."""

from cxfeed.core.exceptions.base import (
    ConfigurationError,
    CxFeedError,
    DatasetError,
    MalformedPayloadError,
    RateLimitError,
    UpstreamError,
)
from cxfeed.core.exceptions.codes import ErrorCode

__all__ = [
    "CxFeedError",
    "ConfigurationError",
    "DatasetError",
    "UpstreamError",
    "MalformedPayloadError",
    "RateLimitError",
    "ErrorCode",
]
