"""CLI interface for journal-insights.

Usage:
    # Redact text (stdin: raw text, stdout: redacted text)
    echo 'Lunch with Alice in Paris' | journal-insights redact-text

    # Generate insights (stdin or --entries: JSON array of entries)
    journal-insights generate --tier premium --entries entries.json

    # Show the latest stored insight of a kind
    journal-insights latest moodTrend

    # Delete stored insights (all kinds, or one)
    journal-insights clear recommendation

Entries are objects with ``id``, ``text``, ``timestamp`` (ISO 8601) and
``mood`` (happy, neutral, sad, anxious, excited).  Insights are persisted
in SQLite so ``latest`` works across calls.
"""

from __future__ import annotations
import argparse
import asyncio
import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import create_orchestrator, create_redactor, load_config, load_from_yaml
from .errors import JournalInsightsError, RedactionFailed
from .events import INSIGHTS_UPDATED, EventSink
from .log import setup_logging
from .store import SqliteInsightStore
from .types import CompletionEvent, EntitlementTier, Entry, JobKind, Mood

DEFAULT_DB = os.environ.get(
    "JOURNAL_INSIGHTS_DB",
    str(Path.home() / ".journal-insights" / "insights.db"),
)


def _build_config(args: argparse.Namespace) -> dict[str, Any]:
    cfg = load_from_yaml(args.config) if args.config else load_config({})
    if args.no_presidio:
        cfg["use_presidio"] = False
    if args.log_level:
        cfg["log_level"] = args.log_level.upper()
    return cfg


def _db_path(args: argparse.Namespace, cfg: dict[str, Any]) -> str:
    if args.db:
        return args.db
    if cfg["store_backend"] == "sqlite":
        return cfg["store_path"]
    return DEFAULT_DB


def _parse_entry(raw: dict[str, Any]) -> Entry:
    return Entry(
        id=str(raw["id"]),
        text=raw.get("text", ""),
        timestamp=datetime.fromisoformat(raw["timestamp"]),
        mood=Mood(raw.get("mood", "neutral")),
    )


def _event_json(event: CompletionEvent) -> str:
    return json.dumps({
        "job_kind": event.job_kind.value,
        "occurred_at": event.occurred_at.isoformat(),
        "invocation_id": event.invocation_id,
    })


def cmd_redact_text(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    """Redact PII from plain text on stdin."""
    redactor = create_redactor(cfg)
    text = sys.stdin.read()
    try:
        result = redactor.redact(text)
    except RedactionFailed as exc:
        # Withhold: nothing goes to stdout
        sys.stderr.write(f"redaction failed, text withheld: {exc}\n")
        return 2
    sys.stdout.write(result)
    return 0


async def _run_generation(cfg: dict[str, Any], store: SqliteInsightStore,
                          entries: list[Entry], tier: EntitlementTier) -> str | None:
    sink = EventSink()
    sink.subscribe(INSIGHTS_UPDATED, lambda e: print(_event_json(e), flush=True))
    orchestrator = create_orchestrator(cfg, sink, store=store)
    invocation_id = orchestrator.trigger(entries, tier)
    await orchestrator.join()
    return invocation_id


def cmd_generate(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    """Run the three insight generators once over the given entries."""
    raw = Path(args.entries).read_text() if args.entries else sys.stdin.read()
    entries = [_parse_entry(item) for item in json.loads(raw or "[]")]
    tier = EntitlementTier(args.tier)

    store = SqliteInsightStore(_db_path(args, cfg))
    try:
        invocation_id = asyncio.run(_run_generation(cfg, store, entries, tier))
    finally:
        store.close()

    if invocation_id is None:
        sys.stderr.write(f"Insight generation is not available on the {tier.value} tier\n")
    return 0


def cmd_latest(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    """Print the newest stored insight of a kind."""
    store = SqliteInsightStore(_db_path(args, cfg))
    try:
        artifact = store.latest(JobKind(args.kind))
    finally:
        store.close()
    if artifact is None:
        sys.stderr.write(f"No {args.kind} insight stored\n")
        return 1
    json.dump({
        "kind": artifact.kind.value,
        "generated_at": artifact.generated_at.isoformat(),
        "period_start": artifact.period_start.isoformat() if artifact.period_start else None,
        "period_end": artifact.period_end.isoformat() if artifact.period_end else None,
        "payload": json.loads(artifact.payload),
    }, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


def cmd_clear(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    """Delete stored insights, optionally of one kind."""
    kind = JobKind(args.kind) if args.kind else None
    store = SqliteInsightStore(_db_path(args, cfg))
    try:
        removed = store.clear(kind)
    finally:
        store.close()
    sys.stderr.write(f"Cleared {removed} insight(s)\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="journal-insights",
        description="PII-safe insight generation for journal entries",
    )
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--db", default=None, help="SQLite insight store path")
    parser.add_argument("--no-presidio", action="store_true", help="Regex-only redaction")
    parser.add_argument("--log-level", default=None, help="Logging level")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("redact-text", help="Redact plain text (stdin)")

    gen = sub.add_parser("generate", help="Generate insights for entries (JSON)")
    gen.add_argument("--tier", choices=[t.value for t in EntitlementTier], default="premium")
    gen.add_argument("--entries", default=None, help="Entries JSON file (default: stdin)")

    latest = sub.add_parser("latest", help="Show the latest stored insight")
    latest.add_argument("kind", choices=[k.value for k in JobKind])

    clear = sub.add_parser("clear", help="Delete stored insights")
    clear.add_argument("kind", nargs="?", default=None, choices=[k.value for k in JobKind])
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = _build_config(args)
    except (OSError, JournalInsightsError) as exc:
        sys.stderr.write(f"config error: {exc}\n")
        return 2
    setup_logging(cfg["log_level"], cfg["log_file"])

    cmds = {
        "redact-text": cmd_redact_text,
        "generate": cmd_generate,
        "latest": cmd_latest,
        "clear": cmd_clear,
    }
    return cmds[args.command](args, cfg)


if __name__ == "__main__":
    sys.exit(main())
