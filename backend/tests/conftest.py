"""
PromptLens Backend - Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── sample_image_bytes: Fake JPEG content for upload tests
    ├── fast_sleep:         AsyncMock replacing asyncio.sleep
    ├── mock_analyzer:      MockAnalyzer with seeded RNG, no latency, no failures
    ├── registry:           AnalyzerRegistry with only the mock provider
    ├── analytics:          InMemoryAnalytics observer
    └── test_client:        HTTPX AsyncClient bound to a fresh app
"""

import os
import random
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Set BEFORE any promptlens imports so the settings singleton never sees
# real API keys from the developer's shell or .env
os.environ["AI_SERVICE_PROVIDER"] = "mock"
os.environ["OPENAI_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from promptlens.config import Settings  # noqa: E402
from promptlens.services.analytics import InMemoryAnalytics  # noqa: E402
from promptlens.services.analyzer_factory import AnalyzerRegistry  # noqa: E402
from promptlens.services.mock_analyzer import MockAnalyzer  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def sample_image_bytes():
    """
    Minimal JPEG bytes: SOI marker + JFIF header + EOI marker.

    Not a real photograph; analyzers only check size and declared MIME type.
    """
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


@pytest.fixture
def fast_sleep():
    """AsyncMock standing in for asyncio.sleep; records requested delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def mock_analyzer(fast_sleep):
    """MockAnalyzer that never sleeps for real and never injects failures."""
    return MockAnalyzer(rng=random.Random(42), sleep=fast_sleep, failure_rate=0.0)


@pytest.fixture
def registry(mock_analyzer):
    """Registry with a single provider: the fixture mock analyzer."""
    return AnalyzerRegistry({"mock": lambda: mock_analyzer}, preferred="mock")


@pytest.fixture
def analytics():
    return InMemoryAnalytics()


@pytest.fixture
def test_settings():
    return Settings(
        ai_service_provider="mock",
        openai_api_key="",
        gemini_api_key="",
        log_level="WARNING",
        _env_file=None,
    )


@pytest_asyncio.fixture
async def test_client(test_settings, registry, analytics):
    """
    Async HTTP client for endpoint testing.

    Uses ASGITransport to route requests directly to a fresh app whose
    registry holds only the fixture mock analyzer.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from promptlens.main import create_app

    app = create_app(app_settings=test_settings, registry=registry, observer=analytics)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
