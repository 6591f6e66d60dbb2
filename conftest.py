"""
Root conftest.py for project-wide pytest configuration.

Registers custom markers and the command line options that gate them.
"""
import os

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark a test as a unit test")
    config.addinivalue_line("markers", "integration: mark a test as an integration test")
    config.addinivalue_line("markers", "slow: mark a test as slow to run")
    config.addinivalue_line("markers", "host: mark a test that samples real host resources")


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom command line options to pytest."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests"
    )
    parser.addoption(
        "--run-host",
        action="store_true",
        default=False,
        help="run tests that read real CPU, memory and connection usage"
    )


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item]
) -> None:
    """Skip tests based on markers and command line options."""
    if not config.getoption("--run-slow"):
        skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)

    if not config.getoption("--run-host"):
        skip_host = pytest.mark.skip(reason="need --run-host option to run")
        for item in items:
            if "host" in item.keywords:
                item.add_marker(skip_host)


@pytest.fixture(scope="session")
def test_env() -> None:
    """Set up the test environment variables."""
    original_env = dict(os.environ)

    os.environ["RISK_GATE_ENV"] = "development"

    yield

    os.environ.clear()
    os.environ.update(original_env)
