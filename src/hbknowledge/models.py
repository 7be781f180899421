"""Data models for the hbknowledge rule lifecycle engine."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

# Kind of change announced in a release note line
DeprecationCategory = Literal[
    "renamed",  # API renamed (old name -> new name)
    "removed",  # API removed entirely
    "changed",  # API superseded by a different one
]

Severity = Literal[
    "warning",   # Suboptimal but not incorrect
    "error",     # Wrong, will cause problems
    "critical",  # Blocks code generation entirely
]

ReviewStatus = Literal["draft", "approved", "rejected"]

CorrectionState = Literal["resolved", "unresolved"]

AUTO_GENERATED_SOURCE = "auto-generated-from-release"


class DeprecationRecord(BaseModel):
    """A structured deprecation fact extracted from one release-note line."""

    model_config = ConfigDict(frozen=True)

    deprecated_api: str = Field(..., description="The old API token, as written between backticks")
    replacement_api: str | None = Field(None, description="The new API token (None if removed)")
    category: DeprecationCategory
    source_release: str = Field(..., description="Release version the line came from")
    migration_guidance: str | None = Field(None, description="Short instruction for migrating")


class ViolationRule(BaseModel):
    """A pattern-matching rule that flags an anti-pattern in source text."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique across static and dynamic rules")
    pattern: str = Field(..., description="Regular expression matched against source text")
    description: str
    severity: Severity
    correction_id: str | None = Field(None, description="Knowledge entry explaining the fix")
    fix_suggestion: str | None = None


class StaticRule(ViolationRule):
    """A hand-authored rule, loaded once at boot and never changed."""


class DynamicRule(ViolationRule):
    """A rule synthesized from a deprecation record.

    Only review_status changes after creation, and only once.
    """

    deprecated_api: str = Field(..., description="Token the rule id was derived from")
    source_release: str = Field(..., description="Release version that triggered generation")
    review_status: ReviewStatus = "draft"
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source: str = AUTO_GENERATED_SOURCE

    @field_validator("generated_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive values are taken as UTC
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class KnowledgeEntry(BaseModel):
    """A documented correct-usage pattern that rules can point to as their fix."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier")
    title: str
    content: str
    violation_ids: tuple[str, ...] = Field(default=(), description="Rules this entry corrects")
    version_range: str = Field(default=">=2.0.0", description="Framework semver range it applies to")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    last_verified_at: datetime | None = None
    source: str = "curated"


class Finding(BaseModel):
    """One match of one rule against submitted source text."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    severity: Severity
    description: str
    fix_suggestion: str | None = None
    correction_id: str | None = None
    correction: CorrectionState | None = Field(
        None, description="Whether correction_id resolved to a knowledge entry"
    )
    correction_title: str | None = None
    matched_text: str
    line_number: int = Field(..., ge=1)


_SEVERITY_LABELS = {
    "critical": "🔴 CRITICAL",
    "error": "🟠 ERROR",
    "warning": "🟡 WARNING",
}


class CheckResult(BaseModel):
    """Outcome of matching the approved rule set against one source text."""

    model_config = ConfigDict(frozen=True)

    findings: list[Finding] = Field(default_factory=list)
    blocking: bool = False

    def to_context(self) -> str:
        """Format the findings for inclusion in LLM context."""
        if not self.findings:
            return "✅ No architectural violations detected."

        if self.blocking:
            lines = ["🚫 CODE GENERATION BLOCKED: blocking violations found.\n"]
        else:
            lines = ["⚠️ Architectural violations detected:\n"]

        for i, finding in enumerate(self.findings, start=1):
            lines.append(
                f"{i}. [{_SEVERITY_LABELS[finding.severity]}] {finding.rule_id} "
                f"(line {finding.line_number}: `{finding.matched_text}`)"
            )
            lines.append(f"   {finding.description}")
            if finding.fix_suggestion:
                lines.append(f"   → Suggestion: {finding.fix_suggestion}")
            if finding.correction == "resolved":
                lines.append(f"   → Fix: {finding.correction_title} (pattern_id: {finding.correction_id})")
            elif finding.correction == "unresolved":
                lines.append(f"   → Correction ID: {finding.correction_id} (unresolved)")
            lines.append("")

        if self.blocking:
            lines.append("Correct all blocking violations before requesting code generation.")

        return "\n".join(lines).rstrip()


class StoreState(BaseModel):
    """The full logical state of a rule store, as handed to and from a backend."""

    static_rules: list[StaticRule] = Field(default_factory=list, description="In declaration order")
    dynamic_rules: list[DynamicRule] = Field(default_factory=list)
    entries: list[KnowledgeEntry] = Field(default_factory=list)


class IngestReport(BaseModel):
    """Diagnostics for one ingestion cycle."""

    version: str
    parsed: int = 0
    accepted: list[str] = Field(default_factory=list, description="Ids of rules inserted this cycle")
    unchanged: list[str] = Field(default_factory=list, description="Ids already present from an earlier cycle")
    approved: list[str] = Field(default_factory=list, description="Ids approved by the auto-approval policy")
    errors: list[str] = Field(default_factory=list, description="Synthesis and store rejections")
    skipped: bool = Field(default=False, description="True when the trigger was coalesced into a running cycle")

    @computed_field
    @property
    def rejected(self) -> int:
        return len(self.errors)
