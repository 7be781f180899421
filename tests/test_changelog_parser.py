"""Tests for release-note parsing."""

import pytest

from hbknowledge.changelog_parser import ChangelogParser, match_line, parse_release_notes


@pytest.fixture
def parser():
    return ChangelogParser()


class TestRenameTemplate:
    """`X` has been renamed to `Y`."""

    def test_has_been_renamed(self, parser):
        records = parser.parse("`HBApplication` has been renamed to `Application`", "2.1.0")

        assert len(records) == 1
        assert records[0].deprecated_api == "HBApplication"
        assert records[0].replacement_api == "Application"
        assert records[0].category == "renamed"
        assert records[0].source_release == "2.1.0"

    @pytest.mark.parametrize(
        "line",
        [
            "- `HBRouter` renamed to `Router`",
            "* `HBRouter` was renamed to `Router`",
            "- **`HBRouter`** has been renamed to **`Router`**",
            "  `HBRouter` HAS BEEN RENAMED TO `Router`.",
        ],
    )
    def test_rename_variants(self, parser, line):
        records = parser.parse(line, "2.0.0")

        assert [(r.deprecated_api, r.replacement_api, r.category) for r in records] == [
            ("HBRouter", "Router", "renamed")
        ]

    def test_migration_guidance_names_both_tokens(self, parser):
        record = parser.parse("`HBRequest` has been renamed to `Request`", "2.0.0")[0]
        assert record.migration_guidance == "Replace all uses of `HBRequest` with `Request`"

    def test_rename_without_backticks_is_skipped(self, parser):
        assert parser.parse("HBApplication has been renamed to Application", "2.0.0") == []


class TestRemovedTemplate:
    """Removed ... `X`."""

    def test_removed_deprecated_property(self, parser):
        records = parser.parse("Removed deprecated `HBRequest.logger` property", "2.1.0")

        assert len(records) == 1
        assert records[0].deprecated_api == "HBRequest.logger"
        assert records[0].replacement_api is None
        assert records[0].category == "removed"

    def test_removed_list_item(self, parser):
        records = parser.parse("- Removed `HBApplication.start()` in favour of services", "2.0.0")

        assert records[0].deprecated_api == "HBApplication.start()"
        assert records[0].category == "removed"

    def test_removed_must_lead_the_line(self, parser):
        # Narrative mention, not an announcement
        assert parser.parse("We have removed support for `Linux 5.4`", "2.0.0") == []

    def test_removed_without_token_is_skipped(self, parser):
        assert parser.parse("Removed the old benchmarks", "2.0.0") == []


class TestDeprecatedInFavorTemplate:
    """`X` ... deprecated in favor of `Y`."""

    def test_deprecated_in_favor_of(self, parser):
        records = parser.parse(
            "`HTTPResponseError.headers` is now deprecated in favor of `HTTPResponseError.response(from:context:)`",
            "2.3.0",
        )

        assert len(records) == 1
        assert records[0].deprecated_api == "HTTPResponseError.headers"
        assert records[0].replacement_api == "HTTPResponseError.response(from:context:)"
        assert records[0].category == "changed"

    def test_british_spelling(self, parser):
        records = parser.parse("`oldRun()` has been deprecated in favour of `run()`", "2.3.0")
        assert records[0].category == "changed"
        assert records[0].replacement_api == "run()"


class TestTemplateOrder:
    """The first template that matches a line wins."""

    def test_rename_wins_over_deprecated(self, parser):
        line = "`A` has been renamed to `B`; `C` deprecated in favor of `D`"
        records = parser.parse(line, "1.0.0")

        assert len(records) == 1
        assert records[0].category == "renamed"
        assert records[0].deprecated_api == "A"

    def test_removed_wins_over_deprecated(self, parser):
        line = "Removed `A`, previously deprecated in favor of `B`"
        records = parser.parse(line, "1.0.0")

        assert [(r.deprecated_api, r.category) for r in records] == [("A", "removed")]


class TestParserContract:
    """Purity, deduplication and empty inputs."""

    def test_empty_input(self, parser):
        assert parser.parse("", "1.0.0") == []

    def test_non_string_input(self, parser):
        assert parser.parse(None, "1.0.0") == []

    def test_prose_only(self, parser):
        body = """
        ## What's Changed
        This release improves performance of the router and fixes several bugs.
        Thanks to all our contributors!
        """
        assert parser.parse(body, "2.4.0") == []

    def test_duplicates_collapse(self, parser):
        body = "\n".join([
            "- `HBApplication` has been renamed to `Application`",
            "- `HBApplication` renamed to `Application` (see migration guide)",
            "- Removed `HBApplication`",
        ])
        records = parser.parse(body, "2.0.0")

        # Same API + category collapses; a different category is a separate fact
        assert [(r.deprecated_api, r.category) for r in records] == [
            ("HBApplication", "renamed"),
            ("HBApplication", "removed"),
        ]

    def test_order_of_first_occurrence(self, parser):
        body = "\n".join([
            "Removed `b`",
            "`a` has been renamed to `c`",
        ])
        assert [r.deprecated_api for r in parser.parse(body, "1.0.0")] == ["b", "a"]

    def test_full_release_body(self, parser):
        body = """## Hummingbird 2.1.0

### Breaking changes
- `HBApplication` has been renamed to `Application`
- Removed deprecated `HBRequest.logger` property
- `HBResponse.body(_:)` is deprecated in favor of `Response(status:body:)`

### Fixes
- Fixed crash when `Router` had no routes
"""
        records = parser.parse(body, "2.1.0")

        assert [(r.deprecated_api, r.category) for r in records] == [
            ("HBApplication", "renamed"),
            ("HBRequest.logger", "removed"),
            ("HBResponse.body(_:)", "changed"),
        ]

    def test_parse_is_repeatable(self, parser):
        body = "`X` has been renamed to `Y`\nRemoved `Z`"
        assert parser.parse(body, "1.0.0") == parser.parse(body, "1.0.0")

    def test_module_function(self):
        assert parse_release_notes("Removed `X`", "1.0.0")[0].deprecated_api == "X"

    def test_match_line_blank(self):
        assert match_line("   ", "1.0.0") is None
