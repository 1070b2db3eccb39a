from __future__ import annotations

import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_dockerstart_handlers():
    """Drop handlers installed by ``setup_logging`` after each test.

    A ``StreamHandler`` keeps the ``sys.stderr`` that existed when it was
    created; under pytest that is a per-test capture stream that is closed
    once the test ends.
    """
    yield
    root = logging.getLogger("dockerstart")
    for handler in list(root.handlers):
        if getattr(handler, "_dockerstart_handler_id", None):
            root.removeHandler(handler)
            handler.close()
