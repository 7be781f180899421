"""Load the hand-authored rule catalogue and knowledge entries from YAML.

Directory structure:
    bootstrap_data/
    ├── rules.yaml       # static violation rules, in declaration order
    └── knowledge.yaml   # knowledge entries the rules point to
"""

import logging
from pathlib import Path

import yaml

from .models import KnowledgeEntry, StaticRule
from .rule_store import RuleStore

logger = logging.getLogger("hbknowledge.bootstrap")

BOOTSTRAP_DIR = Path(__file__).parent / "bootstrap_data"


def _parse_rule(data: dict) -> StaticRule:
    """Parse a rule dict from YAML into a StaticRule."""
    return StaticRule(
        id=data["id"],
        pattern=data["pattern"],
        description=data["description"].strip(),
        severity=data.get("severity", "warning"),
        correction_id=data.get("correction_id"),
        fix_suggestion=data.get("fix_suggestion"),
    )


def _parse_entry(data: dict) -> KnowledgeEntry:
    """Parse a knowledge entry dict from YAML into a KnowledgeEntry."""
    return KnowledgeEntry(
        id=data["id"],
        title=data["title"],
        content=data["content"].strip(),
        violation_ids=data.get("violation_ids", []),
        version_range=data.get("version_range", ">=2.0.0"),
        confidence=data.get("confidence", 1.0),
        last_verified_at=data.get("last_verified_at"),
        source=data.get("source", "curated"),
    )


def _read_yaml(path: Path, key: str) -> list[dict]:
    if not path.exists():
        logger.warning(f"Bootstrap file missing: {path}")
        return []
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data.get(key, [])


def load_rules(base_dir: Path = BOOTSTRAP_DIR) -> list[StaticRule]:
    """Load static rules from rules.yaml, preserving declaration order."""
    return [_parse_rule(item) for item in _read_yaml(base_dir / "rules.yaml", "rules")]


def load_entries(base_dir: Path = BOOTSTRAP_DIR) -> list[KnowledgeEntry]:
    """Load knowledge entries from knowledge.yaml."""
    return [_parse_entry(item) for item in _read_yaml(base_dir / "knowledge.yaml", "entries")]


async def load_bootstrap(store: RuleStore, base_dir: Path = BOOTSTRAP_DIR) -> tuple[int, int]:
    """Load the bundled catalogue into a store.

    Returns:
        (rule_count, entry_count)

    Raises:
        StoreRejected: if the catalogue breaks a store invariant.
    """
    rules = load_rules(base_dir)
    entries = load_entries(base_dir)
    await store.load_static(rules, entries)
    return len(rules), len(entries)
