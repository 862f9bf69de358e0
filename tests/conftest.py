"""Shared test configuration and fixtures."""

import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest

_RELAY_ENV_VARS = (
    "DERIV_APP_ID",
    "RELAY_CONTRACT_TIMEOUT",
    "RELAY_HOST",
    "RELAY_PORT",
    "RELAY_REQUEST_TIMEOUT",
)


@pytest.fixture(autouse=True)
def _isolate_relay_env_vars() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    """Hide relay environment variables from the tests.

    The default ``settings.yaml`` reads ``${DERIV_APP_ID:116785}`` and
    similar placeholders. A developer's shell or ``.env`` file setting
    any of them would otherwise leak into assertions on the defaults.
    """
    with patch.dict(os.environ):
        for name in _RELAY_ENV_VARS:
            os.environ.pop(name, None)
        yield
