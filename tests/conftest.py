"""
Pytest configuration for ResearchVault tests

Provides fixtures shared across unit and integration tests
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from researchvault.detection.models import Candidate
from researchvault.infrastructure.database import DatabaseConnectionPool, init_database
from researchvault.infrastructure.llm_budget import reset_budget
from researchvault.observability.telemetry import reset_telemetry
from researchvault.storage.candidates import SqliteCandidateStore

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    """Fresh counters, budget and LLM flag for every test"""
    reset_telemetry()
    reset_budget()
    monkeypatch.setenv("RESEARCHVAULT_USE_LLM", "true")
    yield
    reset_telemetry()
    reset_budget()


@pytest.fixture
def db_pool(tmp_path):
    """Connection pool over a throwaway SQLite file"""
    db_path = tmp_path / "researchvault_test.db"
    init_database(db_path)
    pool = DatabaseConnectionPool(db_path, pool_size=2)
    yield pool
    pool.close_all()


@pytest.fixture
def store(db_pool):
    return SqliteCandidateStore(db_pool)


@pytest.fixture
def make_candidate():
    """Factory for unsaved candidates"""

    def _make(url: str, title: str = "", **overrides) -> Candidate:
        fields = {
            "url": url,
            "title": title,
            "domain": "example.org",
            "visited_at": FIXED_NOW,
            "confidence_score": 0.6,
            "is_academic": True,
        }
        fields.update(overrides)
        return Candidate(**fields)

    return _make
