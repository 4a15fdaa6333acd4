"""Pytest configuration for test isolation.

The database client keeps a process-wide engine bound to the first URL it
sees, and the import path reads the remote endpoint settings from the
environment. Each test gets a fresh engine and a clean set of
``STATEMENT_IMPORT_*`` variables so tests don't share state. CLI runs attach a
handler to the ``statement_import`` logger; it is removed after each test.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from db.client import reset_engine


def _reset_package_logging() -> None:
    for name in list(logging.root.manager.loggerDict):
        if name == "statement_import" or name.startswith("statement_import."):
            logger = logging.getLogger(name)
            logger.setLevel(logging.NOTSET)
            for h in list(logger.handlers):
                logger.removeHandler(h)
    logging.getLogger("statement_import").propagate = True
    for name in ("openai", "httpx", "urllib3"):
        logging.getLogger(name).setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in (
        "DATABASE_URL",
        "STATEMENT_IMPORT_REMOTE_URL",
        "STATEMENT_IMPORT_REMOTE_TOKEN",
        "STATEMENT_IMPORT_AI_MODEL",
        "STATEMENT_IMPORT_LOG_LEVEL",
        "STATEMENT_IMPORT_LOG_LEVELS",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_engine()
    yield
    reset_engine()
    _reset_package_logging()
