"""Pytest configuration and shared fixtures."""

import pytest


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--use-real-db",
        action="store_true",
        default=False,
        help="Run tests against a real Postgres (testcontainers) instead of mocks",
    )
    parser.addoption(
        "--online",
        action="store_true",
        default=False,
        help="Run tests that require external connectivity (e.g. the Outscraper API)",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "online: mark test as requiring external connectivity"
    )
    config.addinivalue_line("markers", "unit: fast tests with no I/O")
    config.addinivalue_line(
        "markers", "integration: tests that need a real database"
    )


def pytest_collection_modifyitems(config, items):
    """Skip online tests without --online and integration tests without --use-real-db."""
    skip_online = pytest.mark.skip(reason="need --online option to run")
    skip_db = pytest.mark.skip(reason="need --use-real-db option to run")
    for item in items:
        if "online" in item.keywords and not config.getoption("--online"):
            item.add_marker(skip_online)
        if "integration" in item.keywords and not config.getoption("--use-real-db"):
            item.add_marker(skip_db)


@pytest.fixture
def use_real_db(request):
    """Fixture to check if tests should use real database."""
    return request.config.getoption("--use-real-db", default=False)
