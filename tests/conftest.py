"""Pytest configuration for test isolation.

The package reads ``CARD_ANALYSIS_*`` environment variables (rates endpoint,
offline mode, log level, top-N) and the CLI configures package logging once
per process. To keep tests hermetic we clear those variables for every test
and undo any logging configuration a CLI test performed, so later tests can
rely on ``caplog`` seeing package records.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator

import pytest

from card_analysis import logging_setup


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("CARD_ANALYSIS_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_package_logging() -> Iterator[None]:
    yield
    logger = logging.getLogger("card_analysis")
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    logging_setup._CONFIGURED = False
