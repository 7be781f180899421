"""Extract deprecation facts from free-text release notes.

Each line is tested against a short, ordered list of fixed templates. Only
tokens written between backticks are ever taken as API names; narrative prose
that does not fit a template is skipped. Missing an announcement is preferred
over inventing one.
"""

import logging
import re
from dataclasses import dataclass

from .models import DeprecationCategory, DeprecationRecord

logger = logging.getLogger("hbknowledge.changelog")

# Leading markdown list markers and quote markers
_LIST_MARKER = re.compile(r"^(?:[-*•+>]|\d+[.)])\s+")


@dataclass(frozen=True)
class _Template:
    name: str
    category: DeprecationCategory
    regex: re.Pattern


# Order matters: the first template that matches a line wins.
TEMPLATES: tuple[_Template, ...] = (
    _Template(
        name="renamed",
        category="renamed",
        regex=re.compile(
            r"`(?P<old>[^`]+)`\s+(?:has\s+been\s+|was\s+|is\s+)?renamed\s+to\s+`(?P<new>[^`]+)`",
            re.IGNORECASE,
        ),
    ),
    _Template(
        name="removed",
        category="removed",
        regex=re.compile(r"^removed\b[^`]*`(?P<old>[^`]+)`", re.IGNORECASE),
    ),
    _Template(
        name="deprecated-in-favor",
        category="changed",
        regex=re.compile(
            r"`(?P<old>[^`]+)`.*?\bdeprecated\s+in\s+favou?r\s+of\s+`(?P<new>[^`]+)`",
            re.IGNORECASE,
        ),
    ),
)


def _normalize_line(line: str) -> str:
    """Drop surrounding whitespace, list markers and bold/italic markers."""
    line = line.strip()
    line = _LIST_MARKER.sub("", line)
    return line.replace("**", "").replace("__", "").strip()


def _migration_guidance(category: DeprecationCategory, old: str, new: str | None) -> str:
    if category == "removed":
        return f"`{old}` has been removed. Refactor code to remove the dependency."
    return f"Replace all uses of `{old}` with `{new}`"


def match_line(line: str, version: str) -> DeprecationRecord | None:
    """Project one release-note line onto a deprecation record, if it fits a template."""
    text = _normalize_line(line)
    if not text:
        return None

    for template in TEMPLATES:
        match = template.regex.search(text)
        if not match:
            continue
        old = match.group("old").strip()
        new = match.groupdict().get("new")
        new = new.strip() if new else None
        if not old or (template.category != "removed" and not new):
            # A template matched but produced an empty token; no later template applies
            return None
        return DeprecationRecord(
            deprecated_api=old,
            replacement_api=new,
            category=template.category,
            source_release=version,
            migration_guidance=_migration_guidance(template.category, old, new),
        )
    return None


class ChangelogParser:
    """Parses a release body into a deduplicated list of deprecation records."""

    def parse(self, text: str, version: str) -> list[DeprecationRecord]:
        """Parse release notes for one version.

        Never raises. Duplicates (same deprecated API and category) collapse to
        the first occurrence; an empty or unrecognised body yields [].
        """
        if not isinstance(text, str) or not text:
            return []
        version = str(version).strip()

        records: list[DeprecationRecord] = []
        seen: set[tuple[str, str]] = set()

        for line in text.splitlines():
            record = match_line(line, version)
            if record is None:
                continue
            key = (record.deprecated_api, record.category)
            if key in seen:
                continue
            seen.add(key)
            records.append(record)

        logger.debug(f"Parsed {len(records)} deprecation records from release {version}")
        return records


def parse_release_notes(text: str, version: str) -> list[DeprecationRecord]:
    """Convenience wrapper around ChangelogParser().parse."""
    return ChangelogParser().parse(text, version)
