"""Pytest configuration for the cxfeed test suite."""

from __future__ import annotations

import pytest


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register command-line options for controlling integration tests."""

    parser.addoption(
        "--cxfeed-run-integration",
        action="store_true",
        default=False,
        help="Run cxfeed integration tests that contact the live market-data API.",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register the integration marker for cxfeed tests."""

    config.addinivalue_line(
        "markers",
        "integration: marks cxfeed tests requiring network access",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--cxfeed-run-integration"):
        return

    cxfeed_skip_integration = pytest.mark.skip(
        reason="integration tests require --cxfeed-run-integration",
    )
    for cxfeed_item in items:
        if "integration" in cxfeed_item.keywords:
            cxfeed_item.add_marker(cxfeed_skip_integration)
