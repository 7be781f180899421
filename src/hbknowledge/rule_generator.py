"""Turn deprecation records into draft violation rules.

Pattern construction, first applicable shape wins:

1. Bare type identifier with a legacy namespace prefix (``HBApplication``)
   -> the whole token, word-bounded.
2. Token containing ``(`` -> the last member of the name before ``(``,
   matched either as member access (``.name``) or as a call (``name(``).
3. Token containing ``.`` -> property access on the final member (``.logger``).
4. Anything else -> the whole token, word-bounded.

Every literal goes through ``re.escape`` and the result is compiled before a
rule is emitted; a record that cannot be turned into a valid rule comes back
as a SynthesisRejected value instead of raising.
"""

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from .errors import SynthesisRejected
from .models import DeprecationCategory, DeprecationRecord, DynamicRule, Severity

logger = logging.getLogger("hbknowledge.rule_generator")

RULE_ID_PREFIX = "auto"
LEGACY_PREFIXES = ("HB",)
MAX_ID_SUFFIX = 99

RULE_FLAGS = re.MULTILINE

# Fixed table, no per-record overrides
SEVERITY_BY_CATEGORY: dict[DeprecationCategory, Severity] = {
    "removed": "error",
    "renamed": "warning",
    "changed": "warning",
}

_IDENTIFIER = re.compile(r"^[A-Za-z_]\w*$")
_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


def slugify(token: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to single hyphens, trim hyphens."""
    return _NON_ALNUM_RUN.sub("-", token.lower()).strip("-")


def _is_legacy_type(token: str) -> bool:
    if not _IDENTIFIER.match(token):
        return False
    return any(
        token.startswith(prefix) and len(token) > len(prefix) and token[len(prefix)].isupper()
        for prefix in LEGACY_PREFIXES
    )


def _bounded(literal: str) -> str:
    """Escape a literal and bound it on each side the way \\b would for word characters."""
    escaped = re.escape(literal)
    left = r"\b" if re.match(r"\w", literal[0]) else r"(?<!\w)"
    right = r"\b" if re.match(r"\w", literal[-1]) else r"(?!\w)"
    return f"{left}{escaped}{right}"


def build_pattern(token: str) -> str:
    """Build the matching regex for a deprecated API token.

    Raises:
        ValueError: when the token leaves nothing to match on.
    """
    token = token.strip()
    if not token:
        raise ValueError("empty API token")

    if _is_legacy_type(token):
        return _bounded(token)

    if "(" in token:
        name = token.split("(", 1)[0].rsplit(".", 1)[-1].strip()
        if not name:
            raise ValueError("function reference has no name before '('")
        escaped = re.escape(name)
        return rf"(?:\.{escaped}\b|\b{escaped}\s*\()"

    if "." in token:
        member = token.rsplit(".", 1)[1].strip()
        if not member:
            raise ValueError("property reference ends with '.'")
        return rf"\.{re.escape(member)}\b"

    return _bounded(token)


def describe(record: DeprecationRecord) -> str:
    """One sentence stating the change and, where there is one, the replacement."""
    old = record.deprecated_api
    new = record.replacement_api
    if record.category == "renamed":
        return f"`{old}` has been renamed to `{new}`."
    if record.category == "removed":
        return f"`{old}` has been removed from the API."
    if new:
        return f"`{old}` is deprecated in favor of `{new}`."
    return f"`{old}` has changed in a breaking way."


def fix_suggestion(record: DeprecationRecord) -> str | None:
    if not record.replacement_api:
        return None
    return f"Replace '{record.deprecated_api}' with '{record.replacement_api}'"


def correction_id_for(record: DeprecationRecord) -> str:
    """Conventional id of the knowledge entry documenting this deprecation."""
    return f"deprecated-{slugify(record.deprecated_api)}-{record.category}"


@dataclass(frozen=True)
class SynthesisResult:
    """Either a draft rule or the reason none could be built."""

    rule: DynamicRule | None = None
    error: SynthesisRejected | None = None

    @property
    def ok(self) -> bool:
        return self.rule is not None


class RuleGenerator:
    """Synthesizes draft DynamicRules from deprecation records."""

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(UTC))

    def rule_id(
        self,
        token: str,
        release_version: str,
        taken: Mapping[str, str] | None = None,
    ) -> str | None:
        """Pick the id for a token, honouring ids already bound to other tokens.

        ``taken`` maps existing rule ids to the token each was derived from.
        An id already bound to the same token is reused, so re-ingesting a
        release yields the same id. An id bound to a different token gets a
        numeric suffix (``-2``, ``-3``, ...). Returns None when the slug is
        empty or every suffix up to MAX_ID_SUFFIX is taken.
        """
        slug = slugify(token)
        version = release_version.strip()
        if not slug or not version:
            return None

        base = f"{RULE_ID_PREFIX}-{slug}-{version}"
        taken = taken or {}
        for n in range(1, MAX_ID_SUFFIX + 1):
            candidate = base if n == 1 else f"{base}-{n}"
            owner = taken.get(candidate)
            if owner is None or owner == token:
                return candidate
        return None

    def synthesize(
        self,
        record: DeprecationRecord,
        release_version: str,
        taken: Mapping[str, str] | None = None,
    ) -> SynthesisResult:
        """Build one draft rule, or explain why it could not be built."""
        token = record.deprecated_api

        rule_id = self.rule_id(token, release_version, taken)
        if rule_id is None:
            return SynthesisResult(error=SynthesisRejected(token, "could not derive a free rule id"))

        try:
            pattern = build_pattern(token)
            re.compile(pattern, RULE_FLAGS)
        except (ValueError, re.error) as e:
            logger.warning(f"Pattern synthesis failed for {token!r}: {e}")
            return SynthesisResult(error=SynthesisRejected(token, f"invalid pattern: {e}"))

        rule = DynamicRule(
            id=rule_id,
            pattern=pattern,
            description=describe(record),
            severity=SEVERITY_BY_CATEGORY[record.category],
            fix_suggestion=fix_suggestion(record),
            deprecated_api=token,
            source_release=release_version.strip(),
            review_status="draft",
            generated_at=self._clock(),
        )
        return SynthesisResult(rule=rule)

    def synthesize_all(
        self,
        records: Iterable[DeprecationRecord],
        release_version: str,
        taken: Mapping[str, str] | None = None,
    ) -> tuple[list[DynamicRule], list[SynthesisRejected]]:
        """Synthesize a batch, keeping ids unique within the batch as well."""
        bound = dict(taken or {})
        produced: set[str] = set()
        rules: list[DynamicRule] = []
        errors: list[SynthesisRejected] = []

        for record in records:
            result = self.synthesize(record, release_version, bound)
            if result.rule is None:
                errors.append(result.error)
                continue
            if result.rule.id in produced:
                # Same token announced twice in one release under different categories
                continue
            produced.add(result.rule.id)
            bound[result.rule.id] = result.rule.deprecated_api
            rules.append(result.rule)

        return rules, errors
