"""MCP server exposing the rule engine as tools for coding assistants.

Uses FastMCP from the official Python SDK:
https://github.com/modelcontextprotocol/python-sdk

The store, match engine and ingestion service are built once in ``main()``
and the tools are bound methods of one KnowledgeTools instance.
"""

import asyncio
import logging
import sys

from mcp.server.fastmcp import FastMCP

from . import __version__
from .bootstrap_loader import load_bootstrap
from .config import AppConfig
from .errors import RuleStoreError
from .ingestion import IngestionService
from .logging_config import configure_logging
from .match_engine import MatchEngine
from .persistence import RuleDatabase
from .rule_store import RuleStore

logger = logging.getLogger("hbknowledge.server")

VALID_STATUSES = ("draft", "approved", "rejected")
MAX_CODE_LENGTH = 200_000


class KnowledgeTools:
    """Tool implementations bound to one store instance."""

    def __init__(self, store: RuleStore, engine: MatchEngine, ingestion: IngestionService):
        self.store = store
        self.engine = engine
        self.ingestion = ingestion
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def ensure_initialized(self) -> None:
        """Restore persisted state and load the bundled catalogue on first use."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return
            try:
                if self.store.backend is not None:
                    await self.store.restore()
                rules, entries = await load_bootstrap(self.store)
                logger.info(f"Catalogue ready: {rules} static rules, {entries} entries")
                self._initialized = True
            except Exception as e:
                logger.error(f"Failed to initialize rule store: {e}")
                raise

    async def check_architecture(self, code: str, file_path: str = "") -> str:
        """Analyse Hummingbird 2.x Swift source code for architectural violations.

        Returns every rule match with its severity, the line it was found on,
        and the knowledge entry that explains the correct approach.

        Args:
            code: Swift source code to analyse (paste the full file contents)
            file_path: Optional file path hint, echoed in the report
        """
        await self.ensure_initialized()

        if len(code) > MAX_CODE_LENGTH:
            return f"Code too long ({len(code)} characters, max {MAX_CODE_LENGTH})"

        result = self.engine.check(code)
        text = result.to_context()
        if file_path:
            text = f"File: {file_path}\n{text}"
        return text

    async def ingest_release(self, release_notes: str, version: str) -> str:
        """Mine a release body for deprecations and add them as draft rules.

        Args:
            release_notes: Raw release notes (markdown)
            version: Release version label, e.g. '2.1.0'
        """
        await self.ensure_initialized()

        if not version.strip():
            return "Version is required"

        report = await self.ingestion.ingest(release_notes, version.strip())
        if report.skipped:
            return f"Ingestion already in progress; {version} was not processed"

        lines = [
            f"Release {report.version}: {report.parsed} deprecations parsed",
            f"  Accepted: {len(report.accepted)}",
            f"  Unchanged: {len(report.unchanged)}",
            f"  Rejected: {report.rejected}",
        ]
        for rule_id in report.accepted:
            status = "approved" if rule_id in report.approved else "draft"
            lines.append(f"  + {rule_id} ({status})")
        for error in report.errors:
            lines.append(f"  ! {error}")
        return "\n".join(lines)

    async def review_rule(self, rule_id: str, decision: str) -> str:
        """Approve or reject a draft rule generated from release notes.

        Approved rules take part in check_architecture; rejected ones never do.
        A decision is final.

        Args:
            rule_id: Id of the draft rule (e.g. 'auto-hbapplication-2.1.0')
            decision: 'approved' or 'rejected'
        """
        await self.ensure_initialized()

        try:
            rule = await self.ingestion.review(rule_id, decision)
        except RuleStoreError as e:
            return f"Review failed: {e}"
        return f"Rule {rule.id} is now {rule.review_status}"

    async def list_rules(self, status: str = "draft") -> str:
        """List generated rules by review status.

        Args:
            status: 'draft', 'approved' or 'rejected'
        """
        await self.ensure_initialized()

        if status not in VALID_STATUSES:
            return f"Invalid status '{status}'. Valid statuses: {', '.join(VALID_STATUSES)}"

        rules = self.store.dynamic_rules(status)
        if not rules:
            return f"No {status} rules."

        lines = [f"{len(rules)} {status} rules:"]
        for rule in rules:
            lines.append(f"  • {rule.id} [{rule.severity}] {rule.description}")
            lines.append(f"    pattern: {rule.pattern}  (from {rule.source_release})")
        return "\n".join(lines)

    async def get_knowledge_entry(self, entry_id: str) -> str:
        """Get the full text of a knowledge entry by id.

        Args:
            entry_id: The entry id, as printed by check_architecture
        """
        await self.ensure_initialized()

        entry = self.store.knowledge_entry(entry_id)
        if entry is None:
            return f"Knowledge entry not found: {entry_id}"

        lines = [
            f"**{entry.title}** ({entry.id})",
            entry.content,
            f"Applies to: {entry.version_range} | Confidence: {entry.confidence:.0%}",
        ]
        if entry.violation_ids:
            lines.append(f"Corrects: {', '.join(entry.violation_ids)}")
        return "\n".join(lines)

    async def rule_store_status(self) -> str:
        """Summarise the rule catalogue: static, draft, approved and rejected counts."""
        await self.ensure_initialized()

        counts = self.store.counts
        return "\n".join(f"{name}: {count}" for name, count in counts.items())


def create_server(tools: KnowledgeTools) -> FastMCP:
    """Build a FastMCP server with every tool bound to ``tools``."""
    mcp = FastMCP("hbknowledge")
    for fn in (
        tools.check_architecture,
        tools.ingest_release,
        tools.review_rule,
        tools.list_rules,
        tools.get_knowledge_entry,
        tools.rule_store_status,
    ):
        mcp.add_tool(fn)
    return mcp


def build_tools(config: AppConfig) -> KnowledgeTools:
    """Construct the process-wide store and its consumers from configuration."""
    store = RuleStore(backend=RuleDatabase(config.db_path))
    engine = MatchEngine(store, block_on_error=config.block_on_error)
    ingestion = IngestionService(store, auto_approve=config.auto_approve)
    return KnowledgeTools(store, engine, ingestion)


def main():
    if len(sys.argv) > 1:
        if sys.argv[1] in ("--help", "-h"):
            print("""hbknowledge - Hummingbird knowledge MCP server

Usage: hbknowledge [OPTIONS]

Runs an MCP server over stdio. Tools: check_architecture, ingest_release,
review_rule, list_rules, get_knowledge_entry, rule_store_status.

Options:
  -h, --help     Show this help message
  -V, --version  Show version number

Environment:
  HBK_DATA_DIR        Data directory (default: ~/.hbknowledge)
  HBK_LOG_LEVEL       Log level (default: INFO)
  HBK_BLOCK_ON_ERROR  Treat error findings as blocking (default: false)
  HBK_AUTO_APPROVE    Approve ingested rules immediately (default: false)
""")
            return
        elif sys.argv[1] in ("--version", "-V"):
            print(f"hbknowledge {__version__}")
            return

    config = AppConfig.from_env()
    # Logs go to file only: stdout carries the MCP stdio protocol
    configure_logging(log_dir=config.log_dir, log_level=config.log_level, console_output=False)

    mcp = create_server(build_tools(config))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
