"""Standardised error codes."""

from enum import Enum


class ErrorCode(str, Enum):
    """Error codes carried by every :class:`CxFeedError`."""

    GENERAL_ERROR = "GENERAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    DATASET_ERROR = "DATASET_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


__all__ = ["ErrorCode"]
