import io
import logging

import pytest

from statement_import.logging_setup import (
    configure_logging,
    get_logger,
    parse_level,
    parse_module_levels,
)


def test_module_override_below_package_level_reaches_the_stream() -> None:
    buf = io.StringIO()
    configure_logging("WARNING", module_levels={"categorize": "DEBUG"}, stream=buf)

    get_logger("statement_import.categorize").debug("categorize:ai_batch size=%d", 3)
    get_logger("statement_import.importer").info("import:done imported=%d", 1)
    get_logger("statement_import.importer").warning("import:remote_fallback error=%s", "X")

    lines = buf.getvalue().splitlines()
    assert len(lines) == 2
    assert "statement_import.categorize DEBUG categorize:ai_batch size=3" in lines[0]
    assert "statement_import.importer WARNING import:remote_fallback error=X" in lines[1]


def test_reconfigure_replaces_handler_and_clears_old_overrides() -> None:
    first, second = io.StringIO(), io.StringIO()
    configure_logging("INFO", module_levels={"importer": "ERROR"}, stream=first)
    configure_logging("INFO", module_levels={}, stream=second)

    get_logger("statement_import.importer").info("import:done imported=%d", 2)

    assert first.getvalue() == ""
    assert "import:done imported=2" in second.getvalue()


def test_unconfigured_package_logger_is_silent() -> None:
    logger = get_logger("statement_import.rules")
    pkg = logging.getLogger("statement_import")
    assert logger.name == "statement_import.rules"
    assert [type(h) for h in pkg.handlers] == [logging.NullHandler]


def test_parse_level_and_module_levels() -> None:
    assert parse_level("info") == logging.INFO
    assert parse_level("10") == logging.DEBUG
    assert parse_level(logging.ERROR) == logging.ERROR
    with pytest.raises(ValueError, match="unknown log level"):
        parse_level("LOUD")

    assert parse_module_levels(" categorize=DEBUG, statement_import.importer=warning,") == {
        "statement_import.categorize": logging.DEBUG,
        "statement_import.importer": logging.WARNING,
    }
    with pytest.raises(ValueError):
        parse_module_levels("categorize")
