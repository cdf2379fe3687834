"""Shared fixtures for the HED MCP server tests."""

from unittest.mock import Mock

import pytest

from hed_mcp_server.cache import HedSchemaCache
from hed_mcp_server.monitoring import initialize_monitor

FAKE_SCHEMA = object()


@pytest.fixture
def fake_schema():
    return FAKE_SCHEMA


@pytest.fixture
def schema_loader():
    """Synchronous loader standing in for hedtools' schema loading."""
    return Mock(return_value=FAKE_SCHEMA)


@pytest.fixture
def schema_cache(schema_loader):
    """Isolated schema cache that never touches hedtools."""
    return HedSchemaCache(loader=schema_loader, enable_monitoring=False)


@pytest.fixture
def monitor():
    """Fresh process-wide monitor so counters start at zero."""
    return initialize_monitor()
