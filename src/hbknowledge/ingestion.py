"""Ingestion cycle (release notes -> draft rules) and the review entry point."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .changelog_parser import ChangelogParser
from .errors import RuleStoreError, StoreRejected
from .models import DynamicRule, IngestReport
from .rule_generator import RuleGenerator, correction_id_for
from .rule_store import RuleStore

logger = logging.getLogger("hbknowledge.ingestion")

# Supplies (release_body, version), or None when there is nothing new
ReleaseFetcher = Callable[[], Awaitable[tuple[str, str] | None]]


class IngestionService:
    """Mines release notes into draft rules and routes review decisions.

    At most one ingestion cycle runs at a time. A trigger that arrives while
    a cycle is running is dropped and reported as skipped rather than queued;
    re-running a cycle on the same text produces no new or changed rules.
    """

    def __init__(
        self,
        store: RuleStore,
        parser: ChangelogParser | None = None,
        generator: RuleGenerator | None = None,
        auto_approve: bool = False,
    ):
        self.store = store
        self.parser = parser or ChangelogParser()
        self.generator = generator or RuleGenerator()
        self.auto_approve = auto_approve
        self.last_report: IngestReport | None = None
        self._cycle_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._cycle_lock.locked()

    async def ingest(self, raw_text: str, version: str) -> IngestReport:
        """Run one ingestion cycle over a release body."""
        if self._cycle_lock.locked():
            logger.info(f"Ingestion already running; trigger for {version} coalesced")
            return IngestReport(version=version, skipped=True)

        async with self._cycle_lock:
            report = await self._run_cycle(raw_text, version)

        self.last_report = report
        logger.info(
            f"Ingestion of {version}: parsed={report.parsed} accepted={len(report.accepted)} "
            f"unchanged={len(report.unchanged)} rejected={report.rejected}"
        )
        return report

    async def _run_cycle(self, raw_text: str, version: str) -> IngestReport:
        records = self.parser.parse(raw_text, version)
        report = IngestReport(version=version, parsed=len(records))
        taken = self.store.taken_ids()

        for record in records:
            result = self.generator.synthesize(record, version, taken)
            if result.rule is None:
                logger.warning(str(result.error))
                report.errors.append(str(result.error))
                continue

            rule: DynamicRule = result.rule
            taken[rule.id] = rule.deprecated_api
            if rule.id in report.accepted:
                continue
            if self.store.dynamic_rule(rule.id) is not None:
                report.unchanged.append(rule.id)
                continue

            entry_id = correction_id_for(record)
            if self.store.knowledge_entry(entry_id) is not None:
                rule = rule.model_copy(update={"correction_id": entry_id})

            try:
                await self.store.upsert_dynamic(rule)
            except StoreRejected as e:
                logger.warning(str(e))
                report.errors.append(str(e))
                continue
            report.accepted.append(rule.id)

        if self.auto_approve:
            for rule_id in report.accepted:
                try:
                    await self.store.set_review_status(rule_id, "approved")
                except RuleStoreError as e:
                    logger.warning(f"Auto-approval of {rule_id} failed: {e}")
                    report.errors.append(str(e))
                    continue
                report.approved.append(rule_id)

        if report.accepted and self.store.backend is not None:
            await self.store.persist()

        return report

    async def review(self, rule_id: str, decision: str) -> DynamicRule:
        """Apply an approve/reject decision to a draft rule.

        Raises:
            UnknownRule: no dynamic rule has this id.
            InvalidTransition: the rule was already reviewed or the decision is invalid.
        """
        rule = await self.store.set_review_status(rule_id, decision)
        if self.store.backend is not None:
            await self.store.persist()
        return rule

    async def run_periodic(
        self,
        fetch_release: ReleaseFetcher,
        interval: float,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Fetch and ingest on a fixed interval until ``stop_event`` is set.

        The first cycle runs immediately. A failing cycle is logged and the
        loop carries on with the next one.
        """
        stop = stop_event or asyncio.Event()
        logger.info(f"Periodic ingestion started (interval={interval}s)")

        while not stop.is_set():
            try:
                release = await fetch_release()
                if release is not None:
                    body, version = release
                    await self.ingest(body, version)
            except Exception as e:
                logger.error(f"Ingestion cycle failed: {e}")

            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                pass

        logger.info("Periodic ingestion stopped")
