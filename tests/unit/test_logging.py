import logging

import pytest

from creditmemo.core.logging import setup_logging


@pytest.mark.parametrize("name", ["httpx", "anthropic", "google_genai"])
def test_transport_and_sdk_loggers_are_quieted(name):
    setup_logging()
    assert logging.getLogger(name).level == logging.WARNING


def test_application_loggers_log_debug():
    setup_logging()
    assert logging.getLogger("creditmemo.generation_logic").level == logging.DEBUG
