"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time, so the environment must be set first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("CRAWL_REQUEST_DELAY", "0")
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

from mica_checker.main import app
from tests.fakes import FakeLLM, InMemoryComplianceStore


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def store() -> InMemoryComplianceStore:
    """Empty in-memory compliance store."""
    return InMemoryComplianceStore()


@pytest.fixture
def whitepaper_template(store: InMemoryComplianceStore):
    """Pass-rate template with three categories and five requirements."""
    return store.add_template(
        name="MiCA Whitepaper Checklist",
        type="whitepaper",
        items=[
            {"category": "Part A: Offeror Information", "item_name": "Offeror name", "description": "Legal name of the offeror"},
            {"category": "Part A: Offeror Information", "item_name": "Offeror address", "description": "Registered address"},
            {"category": "Part B: Issuer Information", "item_name": "Issuer name", "description": "Legal name of the issuer"},
            {"category": "Part D: Project Information", "item_name": "Project description", "description": "Description of the project"},
            {"category": "Part D: Project Information", "item_name": "Roadmap", "description": "Planned milestones"},
        ],
    )


@pytest.fixture
def legal_template(store: InMemoryComplianceStore):
    """Risk-point template."""
    return store.add_template(
        name="MiCA Legal Opinion",
        type="legal",
        items=[
            {"category": "Classification", "item_name": "Rights similar to shares or bonds", "scoring_logic": "Yes = 1000, No = 0"},
            {"category": "Classification", "item_name": "Single currency peg", "scoring_logic": "Yes = 1000, No = 0"},
            {"category": "Issuer", "item_name": "Registered legal entity", "scoring_logic": "Yes = 5, No = 0"},
            {"category": "Issuer", "item_name": "Jurisdiction", "scoring_logic": "Not scored", "field_type": "Text"},
        ],
    )


@pytest.fixture
def document(store: InMemoryComplianceStore):
    """Document with three stored chunks."""
    return store.add_document(
        chunks=[
            "The offeror is Example Labs GmbH, Berlin.",
            "The token does not provide rights to profits or dividends.",
            "The roadmap targets mainnet in 2026.",
        ],
    )


@pytest.fixture
def fake_llm() -> FakeLLM:
    """LLM double with no queued responses."""
    return FakeLLM()
