"""Shared fixtures."""

import pytest

from fakes import FakeTransport, mcp_server


@pytest.fixture
def transport():
    return FakeTransport(mcp_server())
