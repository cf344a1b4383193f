"""Shared fixtures: every test gets its own operator map."""

import logging

import pytest

from modelflow.foundation.registry import OperatorMap


@pytest.fixture
def operator_map() -> OperatorMap:
    return OperatorMap.with_builtins()


@pytest.fixture(autouse=True)
def _reset_default_map():
    # blocks freeze the map they run on; keep the process-wide one fresh
    OperatorMap.reset_default()
    yield
    OperatorMap.reset_default()


@pytest.fixture
def debug_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="modelflow")
    return caplog
