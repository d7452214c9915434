"""Root conftest -- slow-test gating shared by every test directory."""

from __future__ import annotations

import os

import pytest

_RUN_SLOW_ENV = "BOTKIT_RUN_SLOW"


def pytest_addoption(parser):
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help=f"Include tests marked @pytest.mark.slow (or set {_RUN_SLOW_ENV}=1).",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: opens real sockets or waits on wall-clock timers")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow") or os.getenv(_RUN_SLOW_ENV) == "1":
        return
    skip_slow = pytest.mark.skip(reason=f"slow test -- pass --run-slow or set {_RUN_SLOW_ENV}=1")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)
