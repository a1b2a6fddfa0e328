"""
Pytest configuration and shared fixtures
"""
import pytest
from pathlib import Path

# Load .env from project root for all tests (override=True to ensure fresh values)
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

from container_exporter.metrics import MetricsRegistry
from tests.helpers import FakeCollector


@pytest.fixture
def fake_collector():
    """Scriptable Docker collector"""
    return FakeCollector()


@pytest.fixture
def registry():
    """Registry using the compose label schema"""
    return MetricsRegistry()


@pytest.fixture
def detailed_registry():
    """Registry using the detailed label schema"""
    return MetricsRegistry(schema='detailed')
