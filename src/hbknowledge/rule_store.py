"""Concurrency-safe store for static rules, dynamic rules and knowledge entries.

The store keeps its whole state in one immutable RuleSnapshot. Writers are
serialised by an asyncio lock, validate against the current snapshot, build a
new one and swap it in with a single assignment, so a reader either sees the
state before a write or after it, never in between. Readers never take the
lock and only ever receive frozen models inside tuples or read-only mappings.
"""

import asyncio
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import NamedTuple, Protocol

from .errors import InvalidTransition, RuleStoreError, StoreRejected, UnknownRule
from .models import (
    DynamicRule,
    KnowledgeEntry,
    ReviewStatus,
    StaticRule,
    StoreState,
    ViolationRule,
)
from .rule_generator import RULE_FLAGS

logger = logging.getLogger("hbknowledge.rule_store")

_REVIEW_DECISIONS = frozenset({"approved", "rejected"})


def _empty_mapping() -> Mapping:
    return MappingProxyType({})


class CompiledRule(NamedTuple):
    rule: ViolationRule
    regex: re.Pattern


class RuleBackend(Protocol):
    """Durable storage able to round-trip a StoreState."""

    async def save(self, state: StoreState) -> None: ...

    async def load(self) -> StoreState | None: ...


@dataclass(frozen=True)
class RuleSnapshot:
    """One fully-applied, immutable state of the store."""

    static_rules: tuple[StaticRule, ...] = ()
    dynamic_rules: Mapping[str, DynamicRule] = field(default_factory=_empty_mapping)
    entries: Mapping[str, KnowledgeEntry] = field(default_factory=_empty_mapping)
    compiled: Mapping[str, re.Pattern] = field(default_factory=_empty_mapping)
    approved: tuple[CompiledRule, ...] = ()

    def approved_rules(self) -> tuple[ViolationRule, ...]:
        return tuple(item.rule for item in self.approved)

    def entry(self, entry_id: str) -> KnowledgeEntry | None:
        return self.entries.get(entry_id)


def _compile(rule: ViolationRule) -> re.Pattern:
    try:
        return re.compile(rule.pattern, RULE_FLAGS)
    except re.error as e:
        raise StoreRejected(rule.id, f"invalid pattern {rule.pattern!r}: {e}") from e


def _check_correction(rule: ViolationRule, entries: Mapping[str, KnowledgeEntry]) -> None:
    if rule.correction_id is not None and rule.correction_id not in entries:
        raise StoreRejected(
            rule.id, f"correction_id '{rule.correction_id}' does not resolve to a knowledge entry"
        )


def _build_snapshot(
    static_rules: Iterable[StaticRule],
    dynamic_rules: Mapping[str, DynamicRule],
    entries: Mapping[str, KnowledgeEntry],
    compiled: Mapping[str, re.Pattern],
) -> RuleSnapshot:
    static_rules = tuple(static_rules)
    approved_dynamic = sorted(
        (rule for rule in dynamic_rules.values() if rule.review_status == "approved"),
        key=lambda rule: (rule.generated_at, rule.id),
    )
    approved = tuple(
        CompiledRule(rule, compiled[rule.id]) for rule in (*static_rules, *approved_dynamic)
    )
    return RuleSnapshot(
        static_rules=static_rules,
        dynamic_rules=MappingProxyType(dict(dynamic_rules)),
        entries=MappingProxyType(dict(entries)),
        compiled=MappingProxyType(dict(compiled)),
        approved=approved,
    )


def _validate_state(state: StoreState) -> RuleSnapshot:
    """Check every store invariant over a complete state and build its snapshot."""
    entries: dict[str, KnowledgeEntry] = {}
    for entry in state.entries:
        if entry.id in entries:
            raise StoreRejected(entry.id, "duplicate knowledge entry id")
        entries[entry.id] = entry

    compiled: dict[str, re.Pattern] = {}
    dynamic: dict[str, DynamicRule] = {}
    for rule in (*state.static_rules, *state.dynamic_rules):
        if rule.id in compiled:
            raise StoreRejected(rule.id, "duplicate rule id")
        compiled[rule.id] = _compile(rule)
        _check_correction(rule, entries)
        if isinstance(rule, DynamicRule):
            dynamic[rule.id] = rule

    return _build_snapshot(state.static_rules, dynamic, entries, compiled)


class RuleStore:
    """Holds the rule catalogue and the review workflow for generated rules.

    One instance is constructed per process and passed to every consumer.
    """

    def __init__(self, backend: RuleBackend | None = None):
        self.backend = backend
        self._snapshot = RuleSnapshot()
        self._lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Reads (lock-free, always against one complete snapshot)
    # ------------------------------------------------------------------

    def snapshot(self) -> RuleSnapshot:
        """The current immutable state. Later writes never affect it."""
        return self._snapshot

    def all_approved_rules(self) -> tuple[ViolationRule, ...]:
        """Static rules in declaration order, then approved dynamic rules by generation time."""
        return self._snapshot.approved_rules()

    def compiled_rules(self) -> tuple[CompiledRule, ...]:
        return self._snapshot.approved

    def static_rules(self) -> tuple[StaticRule, ...]:
        return self._snapshot.static_rules

    def dynamic_rule(self, rule_id: str) -> DynamicRule | None:
        return self._snapshot.dynamic_rules.get(rule_id)

    def dynamic_rules(self, status: ReviewStatus | None = None) -> tuple[DynamicRule, ...]:
        """Dynamic rules ordered by generation time, optionally filtered by review status."""
        rules = sorted(self._snapshot.dynamic_rules.values(), key=lambda r: (r.generated_at, r.id))
        if status is not None:
            rules = [r for r in rules if r.review_status == status]
        return tuple(rules)

    def taken_ids(self) -> dict[str, str]:
        """Map every rule id in use to the token it was derived from ('' for static rules)."""
        snap = self._snapshot
        taken = {rule.id: "" for rule in snap.static_rules}
        taken.update({rule_id: rule.deprecated_api for rule_id, rule in snap.dynamic_rules.items()})
        return taken

    def knowledge_entry(self, entry_id: str) -> KnowledgeEntry | None:
        return self._snapshot.entry(entry_id)

    def all_entries(self) -> tuple[KnowledgeEntry, ...]:
        snap = self._snapshot
        return tuple(snap.entries[key] for key in sorted(snap.entries))

    def state(self) -> StoreState:
        """The full logical state, as a fresh copy."""
        snap = self._snapshot
        return StoreState(
            static_rules=list(snap.static_rules),
            dynamic_rules=list(self.dynamic_rules()),
            entries=list(self.all_entries()),
        )

    @property
    def counts(self) -> dict[str, int]:
        snap = self._snapshot
        by_status = {"draft": 0, "approved": 0, "rejected": 0}
        for rule in snap.dynamic_rules.values():
            by_status[rule.review_status] += 1
        return {
            "static": len(snap.static_rules),
            "entries": len(snap.entries),
            **{f"dynamic_{status}": n for status, n in by_status.items()},
        }

    # ------------------------------------------------------------------
    # Writes (serialised, validated, swapped in whole)
    # ------------------------------------------------------------------

    async def load_static(
        self,
        rules: Iterable[StaticRule],
        entries: Iterable[KnowledgeEntry],
    ) -> None:
        """Bootstrap the hand-authored catalogue.

        The static rule set is replaced as a whole. Entries are upserted by id,
        so entries added at runtime survive a reload. Loading the same
        definitions again leaves the store as it was.

        Raises:
            StoreRejected: on a duplicate id, an invalid pattern or a
                correction id that does not resolve. Nothing is applied.
        """
        rules = list(rules)
        entries = list(entries)

        async with self._lock:
            snap = self._snapshot

            new_entries = dict(snap.entries)
            seen_entries: set[str] = set()
            for entry in entries:
                if entry.id in seen_entries:
                    raise StoreRejected(entry.id, "duplicate knowledge entry id")
                seen_entries.add(entry.id)
                new_entries[entry.id] = entry

            compiled = {rule_id: snap.compiled[rule_id] for rule_id in snap.dynamic_rules}
            for rule in rules:
                if not isinstance(rule, StaticRule):
                    raise StoreRejected(getattr(rule, "id", "?"), "static set accepts StaticRule only")
                if rule.id in compiled:
                    raise StoreRejected(rule.id, "duplicate rule id")
                compiled[rule.id] = _compile(rule)
                _check_correction(rule, new_entries)

            self._snapshot = _build_snapshot(rules, snap.dynamic_rules, new_entries, compiled)

        logger.info(f"Loaded {len(rules)} static rules and {len(entries)} knowledge entries")

    async def upsert_dynamic(self, rule: DynamicRule) -> DynamicRule:
        """Insert a draft rule, or replace a draft with the same id.

        Raises:
            StoreRejected: the pattern does not compile, the correction id
                dangles, the id belongs to a static rule, the rule is not a
                draft, or the rule it would replace has already been reviewed.
        """
        if not isinstance(rule, DynamicRule):
            raise StoreRejected(getattr(rule, "id", "?"), "only DynamicRule instances can be upserted")
        if rule.review_status != "draft":
            raise StoreRejected(rule.id, f"rules enter the store as draft, got {rule.review_status}")

        async with self._lock:
            snap = self._snapshot

            if any(static.id == rule.id for static in snap.static_rules):
                raise StoreRejected(rule.id, "id is already used by a static rule")
            existing = snap.dynamic_rules.get(rule.id)
            if existing is not None and existing.review_status != "draft":
                raise StoreRejected(
                    rule.id, f"rule is already {existing.review_status}; supersede it with a new id"
                )
            regex = _compile(rule)
            _check_correction(rule, snap.entries)

            dynamic = dict(snap.dynamic_rules)
            dynamic[rule.id] = rule
            compiled = dict(snap.compiled)
            compiled[rule.id] = regex
            self._snapshot = _build_snapshot(snap.static_rules, dynamic, snap.entries, compiled)

        logger.debug(f"{'Replaced' if existing else 'Inserted'} dynamic rule {rule.id}")
        return rule

    async def set_review_status(self, rule_id: str, status: ReviewStatus) -> DynamicRule:
        """Move a draft rule to approved or rejected. Both are terminal.

        Raises:
            UnknownRule: no dynamic rule has this id.
            InvalidTransition: the rule is not a draft, or status is not a decision.
        """
        async with self._lock:
            snap = self._snapshot
            current = snap.dynamic_rules.get(rule_id)
            if current is None:
                raise UnknownRule(rule_id)
            if current.review_status != "draft" or status not in _REVIEW_DECISIONS:
                raise InvalidTransition(rule_id, current.review_status, str(status))

            updated = current.model_copy(update={"review_status": status})
            dynamic = dict(snap.dynamic_rules)
            dynamic[rule_id] = updated
            self._snapshot = _build_snapshot(snap.static_rules, dynamic, snap.entries, snap.compiled)

        logger.info(f"Rule {rule_id} reviewed: {status}")
        return updated

    async def upsert_entries(self, entries: Iterable[KnowledgeEntry]) -> int:
        """Insert or replace knowledge entries by id. Entries are never removed."""
        entries = list(entries)
        async with self._lock:
            snap = self._snapshot
            merged = dict(snap.entries)
            for entry in entries:
                merged[entry.id] = entry
            self._snapshot = _build_snapshot(
                snap.static_rules, snap.dynamic_rules, merged, snap.compiled
            )
        logger.debug(f"Upserted {len(entries)} knowledge entries")
        return len(entries)

    # ------------------------------------------------------------------
    # Durability
    # ------------------------------------------------------------------

    def _require_backend(self) -> RuleBackend:
        if self.backend is None:
            raise RuleStoreError("No persistence backend configured for this rule store")
        return self.backend

    async def persist(self) -> StoreState:
        """Write the full logical state to the backend."""
        backend = self._require_backend()
        async with self._persist_lock:
            state = self.state()
            await backend.save(state)
        logger.info(
            f"Persisted {len(state.static_rules)} static rules, "
            f"{len(state.dynamic_rules)} dynamic rules, {len(state.entries)} entries"
        )
        return state

    async def restore(self) -> bool:
        """Replace the in-memory state with the backend's.

        Returns False, leaving the store untouched, when the backend holds
        nothing yet.

        Raises:
            StoreRejected: the stored state violates an invariant. Nothing is applied.
        """
        backend = self._require_backend()
        async with self._persist_lock:
            state = await backend.load()
            if state is None:
                logger.info("Nothing to restore: backend is empty")
                return False
            snapshot = _validate_state(state)
            async with self._lock:
                self._snapshot = snapshot

        logger.info(
            f"Restored {len(state.static_rules)} static rules, "
            f"{len(state.dynamic_rules)} dynamic rules, {len(state.entries)} entries"
        )
        return True
