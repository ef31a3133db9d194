"""
Shared test fixtures and configuration.

Environment variables are set BEFORE any compliance imports so the settings
singleton never points at the real registries or vulnerability database.
"""

import logging
import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Override settings before any code imports the settings singleton
os.environ["OSV_API_URL"] = "https://osv.test/v1/querybatch"
os.environ["DEPS_DEV_API_URL"] = "https://deps.test/v3"
os.environ["NPM_REGISTRY_URL"] = "https://npm.test"
os.environ["PYPI_API_URL"] = "https://pypi.test/pypi"
os.environ["STALENESS_CHECK_ENABLED"] = "false"
os.environ["SUPPLY_CHAIN_LOOKUP_ENABLED"] = "false"

import pytest  # noqa: E402

from compliance.core.config import Settings  # noqa: E402
from tests.mocks.projects import write_project  # noqa: E402


@pytest.fixture
def offline_settings():
    """Settings with every registry lookup disabled."""
    return Settings(STALENESS_CHECK_ENABLED=False, SUPPLY_CHAIN_LOOKUP_ENABLED=False)


@pytest.fixture
def online_settings():
    """Settings with registry lookups enabled (served by MockTransport in tests)."""
    return Settings(STALENESS_CHECK_ENABLED=True, SUPPLY_CHAIN_LOOKUP_ENABLED=True)


@pytest.fixture
def test_logger():
    return logging.getLogger("compliance.tests")


@pytest.fixture
def make_project(tmp_path):
    """Factory writing manifest files into a fresh project directory."""

    def _make(files):
        return write_project(tmp_path, files)

    return _make
