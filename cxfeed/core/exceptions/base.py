"""Core exception classes for cxfeed."""

from typing import Any

from cxfeed.core.exceptions.codes import ErrorCode


class CxFeedError(Exception):
    """Base class for all cxfeed errors."""

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCode.GENERAL_ERROR.value,
        details: dict[str, Any] | None = None,
    ):
        """Initialise the error.

        Args:
            message: Human readable message.
            error_code: Machine readable code, see :class:`ErrorCode`.
            details: Extra context for logs and the CLI error payload.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(CxFeedError):
    """Configuration file or override could not be applied."""

    def __init__(
        self,
        message: str,
        source: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if source:
            super_details["source"] = source
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR.value, super_details)
        self.source = source


class DatasetError(CxFeedError):
    """Persisted dataset is missing, unreadable or not a record array."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if path:
            super_details["path"] = path
        super().__init__(message, ErrorCode.DATASET_ERROR.value, super_details)
        self.path = path


class UpstreamError(CxFeedError):
    """The market-data API failed in a way that aborts the run."""

    def __init__(
        self,
        message: str,
        url: str,
        status_code: int | None = None,
        error_code: str = ErrorCode.UPSTREAM_ERROR.value,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        super_details["url"] = url
        if status_code is not None:
            super_details["status_code"] = status_code
        super().__init__(message, error_code, super_details)
        self.url = url
        self.status_code = status_code


class MalformedPayloadError(UpstreamError):
    """Upstream body could not be parsed as the expected structure."""

    def __init__(
        self,
        message: str,
        url: str,
        snippet: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if snippet is not None:
            super_details["snippet"] = snippet
        super().__init__(message, url, None, ErrorCode.MALFORMED_PAYLOAD.value, super_details)


class RateLimitError(UpstreamError):
    """Upstream answered 429 Too Many Requests."""

    def __init__(
        self,
        message: str,
        url: str,
        retry_after: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if retry_after is not None:
            super_details["retry_after"] = retry_after
        super().__init__(message, url, 429, ErrorCode.RATE_LIMIT_ERROR.value, super_details)
        self.retry_after = retry_after
