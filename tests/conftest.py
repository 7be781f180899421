"""Shared fixtures for hbknowledge tests."""

import pytest

from hbknowledge.models import KnowledgeEntry, StaticRule
from hbknowledge.persistence import RuleDatabase
from hbknowledge.rule_generator import RuleGenerator
from hbknowledge.rule_store import RuleStore

from helpers import make_clock


@pytest.fixture
def sample_entries() -> list[KnowledgeEntry]:
    return [
        KnowledgeEntry(
            id="route-handler-dispatcher-only",
            title="Route handlers are pure dispatchers",
            content="Handlers call one service method and return.",
            violation_ids=["inline-db-in-handler"],
        ),
        KnowledgeEntry(
            id="typed-errors-app-error",
            title="Wrap every error in AppError",
            content="Rethrow library errors as AppError.",
            confidence=0.9,
        ),
    ]


@pytest.fixture
def sample_static_rules() -> list[StaticRule]:
    return [
        StaticRule(
            id="inline-db-in-handler",
            pattern=r"router\.(get|post).*\{[^}]*db\.",
            description="Database call inside a route handler.",
            severity="critical",
            correction_id="route-handler-dispatcher-only",
        ),
        StaticRule(
            id="raw-error-thrown",
            pattern=r"throw\s+(?!AppError)\w+Error",
            description="Raw error thrown.",
            severity="error",
            correction_id="typed-errors-app-error",
        ),
    ]


@pytest.fixture
def store() -> RuleStore:
    """An in-memory store with no backend."""
    return RuleStore()


@pytest.fixture
async def loaded_store(store, sample_static_rules, sample_entries) -> RuleStore:
    await store.load_static(sample_static_rules, sample_entries)
    return store


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "rules.db")


@pytest.fixture
def db_store(db_path) -> RuleStore:
    """A store backed by a temporary SQLite database."""
    return RuleStore(backend=RuleDatabase(db_path))


@pytest.fixture
def generator() -> RuleGenerator:
    return RuleGenerator(clock=make_clock())
