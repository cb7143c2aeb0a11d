"""
Shared pytest fixtures for fastquantiles tests.
"""

import logging
import random
from pathlib import Path

import pytest


@pytest.fixture(scope="session")
def test_output_root() -> Path:
    """
    Returns the root test_output directory. Created once per test session.
    Plots written here persist after tests complete for easy inspection.
    """
    output_dir = Path(__file__).parent.parent / "test_output"
    output_dir.mkdir(exist_ok=True)
    return output_dir


@pytest.fixture
def test_output_dir(request, test_output_root) -> Path:
    """
    Returns a directory for the current test to write output files.
    Directory structure: test_output/<module_name>/<test_name>/
    """
    module_name = request.module.__name__.split(".")[-1]
    test_name = request.node.name

    test_dir = test_output_root / module_name / test_name
    test_dir.mkdir(parents=True, exist_ok=True)
    return test_dir


@pytest.fixture
def rng() -> random.Random:
    """Seeded random generator so stream-based tests are reproducible."""
    return random.Random(1234)


def _reset_logger(logger: logging.Logger) -> None:
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        if not isinstance(handler, logging.NullHandler):
            handler.close()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def reset_fastquantiles_logging():
    """Reset logging state before and after each test.

    Tests start from the library default: only a NullHandler on the
    ``fastquantiles`` logger and a level inherited from the root logger.
    """
    logger = logging.getLogger("fastquantiles")
    _reset_logger(logger)
    yield
    _reset_logger(logger)
