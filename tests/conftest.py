import sys

import pytest
from loguru import logger

from roomgraph.settings import get_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    monkeypatch.delenv("ROOMGRAPH_CONFIG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _restore_log_sinks():
    yield
    # main() replaces the sinks; drop them so file handles are closed
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
