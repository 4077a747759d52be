"""Pytest Configuration and Shared Fixtures

This file is automatically loaded by pytest and makes all fixtures available to all tests.
"""
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Keep test runs away from the real database and log files
_TEST_DIR = Path(tempfile.mkdtemp(prefix="analyser-tests-"))
os.environ.setdefault("DATABASE__URL", f"sqlite+aiosqlite:///{_TEST_DIR / 'analyser.db'}")
os.environ.setdefault("LOGGER__FILE_PATH", str(_TEST_DIR / "logs" / "analyser.log"))
os.environ.setdefault("LOGGER__FILTER_ENABLED", "false")
os.environ.setdefault("ANALYSIS__AUTO_START", "false")

# Add backend to path for imports
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

# Import all fixture modules to register them
pytest_plugins = [
    "tests.fixtures.clock",
    "tests.fixtures.upstream",
    "tests.fixtures.database",
]


def pytest_configure(config):
    """Configure pytest with custom markers."""
    # Register custom markers
    config.addinivalue_line(
        "markers",
        "integration: Integration tests using a test database (slower than unit tests)"
    )
    config.addinivalue_line(
        "markers",
        "unit: Unit tests with fakes only (fast)"
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow-running tests (skip with -m 'not slow')"
    )
    config.addinivalue_line(
        "markers",
        "db: Tests requiring a database"
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Auto-mark tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Auto-mark tests in integration/ directory
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        # Auto-mark tests that use the repository fixture
        if "repository" in item.fixturenames:
            item.add_marker(pytest.mark.db)
