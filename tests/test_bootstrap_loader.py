"""Tests for the bundled YAML catalogue."""

import re

import pytest

from hbknowledge.bootstrap_loader import load_bootstrap, load_entries, load_rules
from hbknowledge.match_engine import MatchEngine
from hbknowledge.rule_generator import RULE_FLAGS


class TestCatalogue:
    def test_rules_load_in_order(self):
        rules = load_rules()

        assert len(rules) == 17
        assert rules[0].id == "inline-db-in-handler"
        assert rules[-1].id == "magic-numbers"

    def test_rule_ids_unique(self):
        ids = [rule.id for rule in load_rules()]
        assert len(ids) == len(set(ids))

    def test_every_pattern_compiles(self):
        for rule in load_rules():
            re.compile(rule.pattern, RULE_FLAGS)

    def test_every_correction_resolves(self):
        entry_ids = {entry.id for entry in load_entries()}
        for rule in load_rules():
            assert rule.correction_id in entry_ids, rule.id

    def test_missing_files(self, tmp_path):
        assert load_rules(tmp_path) == []
        assert load_entries(tmp_path) == []

    def test_custom_directory(self, tmp_path):
        (tmp_path / "rules.yaml").write_text(
            "rules:\n"
            "  - id: no-force-unwrap\n"
            "    pattern: '\\w+!\\.'\n"
            "    description: Force unwrap.\n",
            encoding="utf-8",
        )

        rules = load_rules(tmp_path)

        assert rules[0].id == "no-force-unwrap"
        assert rules[0].severity == "warning"
        assert rules[0].correction_id is None


class TestLoadIntoStore:
    @pytest.mark.asyncio
    async def test_load_bootstrap(self, store):
        rule_count, entry_count = await load_bootstrap(store)

        assert store.counts["static"] == rule_count == 17
        assert store.counts["entries"] == entry_count

    @pytest.mark.asyncio
    async def test_load_twice(self, store):
        await load_bootstrap(store)
        before = store.state()
        await load_bootstrap(store)
        assert store.state() == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "source, rule_id",
        [
            ('router.get("/users") { req, ctx in try await db.query("SELECT 1") }', "inline-db-in-handler"),
            ('router.post("/orders") { req, ctx in let s = OrderService(); }', "service-construction-in-handler"),
            ('throw DatabaseError("boom")', "raw-error-thrown-from-handler"),
            ('let url = ProcessInfo.processInfo.environment["URL"]', "direct-env-access"),
            ('let apiKey = "sk-123456"', "hardcoded-credentials"),
            ("do { try run() } catch { }", "swallowed-error"),
            ("nonisolated(unsafe) var cache = 0", "nonisolated-unsafe-usage"),
            ("let timeout = 30", "magic-numbers"),
        ],
    )
    async def test_catalogue_flags_swift(self, store, source, rule_id):
        await load_bootstrap(store)

        findings = MatchEngine(store).check(source).findings

        assert rule_id in {f.rule_id for f in findings}

    @pytest.mark.asyncio
    async def test_clean_swift_is_clean(self, store):
        await load_bootstrap(store)
        source = (
            "struct UserController {\n"
            "    let service: UserService\n"
            "    func list(_ request: Request, context: AppContext) async throws -> [UserDTO] {\n"
            "        try await service.list()\n"
            "    }\n"
            "}\n"
        )

        assert MatchEngine(store).check(source).findings == []
