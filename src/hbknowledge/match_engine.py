"""Apply the approved rule set to submitted source text."""

import logging

from .models import CheckResult, Finding
from .rule_store import RuleSnapshot, RuleStore

logger = logging.getLogger("hbknowledge.match_engine")


class MatchEngine:
    """Runs every approved rule over a source text and reports each match.

    Findings are reported in rule order (static rules in declaration order,
    then approved dynamic rules by generation time) and, within a rule, in
    match order. Overlapping matches from different rules are all kept.
    """

    def __init__(self, store: RuleStore, block_on_error: bool = False):
        self.store = store
        self.block_on_error = block_on_error

    def _is_blocking(self, finding: Finding) -> bool:
        if finding.severity == "critical":
            return True
        return self.block_on_error and finding.severity == "error"

    def check(self, source: str) -> CheckResult:
        """Match source text against the store's current approved rules.

        Raises:
            TypeError: if ``source`` is not a string.
        """
        if not isinstance(source, str):
            raise TypeError(f"source must be a string, not {type(source).__name__}")

        # One snapshot for the whole call: a concurrent ingestion cycle cannot
        # change the rules or entries halfway through.
        snapshot = self.store.snapshot()
        findings = self.check_snapshot(snapshot, source)
        blocking = any(self._is_blocking(f) for f in findings)

        if findings:
            logger.debug(f"{len(findings)} findings ({'blocking' if blocking else 'non-blocking'})")
        return CheckResult(findings=findings, blocking=blocking)

    def check_snapshot(self, snapshot: RuleSnapshot, source: str) -> list[Finding]:
        findings: list[Finding] = []

        for rule, regex in snapshot.approved:
            correction = None
            correction_title = None
            if rule.correction_id is not None:
                entry = snapshot.entry(rule.correction_id)
                if entry is None:
                    correction = "unresolved"
                    logger.warning(f"Rule {rule.id} points at missing entry {rule.correction_id}")
                else:
                    correction = "resolved"
                    correction_title = entry.title

            # Matches arrive in start order, so newlines are counted from the previous one
            line, counted_to = 1, 0
            for match in regex.finditer(source):
                if match.start() == match.end():
                    continue
                line += source.count("\n", counted_to, match.start())
                counted_to = match.start()
                findings.append(
                    Finding(
                        rule_id=rule.id,
                        severity=rule.severity,
                        description=rule.description,
                        fix_suggestion=rule.fix_suggestion,
                        correction_id=rule.correction_id,
                        correction=correction,
                        correction_title=correction_title,
                        matched_text=match.group(0),
                        line_number=line,
                    )
                )

        return findings
