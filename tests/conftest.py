"""Pytest configuration."""

import logging

import pytest


@pytest.fixture(autouse=True)
def _reenable_logging():
    """CLI runs without ``-l`` disable logging process-wide; undo that."""
    yield
    logging.disable(logging.NOTSET)
