"""
Shared pytest configuration.

Async tests are marked with ``@pytest.mark.anyio`` and run on asyncio.
"""

import pytest


@pytest.fixture
def anyio_backend():
    return "asyncio"
