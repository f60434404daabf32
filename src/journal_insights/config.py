"""YAML/dict config loader for journal-insights.

Supports loading from a YAML file or a plain dict (for embedding in a
larger application config).

Example YAML:

    journal_insights:
      redaction:
        max_input_length: 5000
        use_presidio: true
        use_regex: true
        language: en
        score_threshold: 0.35
        placeholders:
          PersonalName: "[NAME]"
          PlaceName: "[PLACE]"
          OrganizationName: "[ORG]"
      generation:
        model: haiku
        max_attempts: 3
        retry_delay: 0.5
        timeout: 120
        store:
          backend: sqlite          # "memory" or "sqlite"
          path: ~/.journal-insights/insights.db
      logging:
        level: INFO
        file: ~/.journal-insights/journal-insights.log
"""

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .events import EventSink
from .generators import BaseInsightGenerator, default_generators
from .llm import AnthropicTextGenerator, TextGenerator
from .orchestrator import GenerationOrchestrator
from .patterns import RegexTagger
from .redactor import DEFAULT_MAX_INPUT_LENGTH, DEFAULT_PLACEHOLDERS, RedactionPolicy, Redactor
from .store import InsightStore, MemoryInsightStore, SqliteInsightStore
from .tagger import EntityTagger, LayeredTagger, PresidioTagger

DEFAULT_STORE_PATH = "~/.journal-insights/insights.db"


def load_config(data: dict[str, Any] | None) -> dict[str, Any]:
    """Normalize a config dict (from YAML or inline)."""
    data = data or {}
    # Support nested under "journal_insights" key or flat
    if "journal_insights" in data:
        data = data["journal_insights"] or {}

    redaction = data.get("redaction") or {}
    generation = data.get("generation") or {}
    store = generation.get("store") or {}
    logging_cfg = data.get("logging") or {}

    cfg = {
        "max_input_length": int(redaction.get("max_input_length", DEFAULT_MAX_INPUT_LENGTH)),
        "use_presidio": bool(redaction.get("use_presidio", True)),
        "use_regex": bool(redaction.get("use_regex", True)),
        "language": redaction.get("language", "en"),
        "score_threshold": float(redaction.get("score_threshold", 0.35)),
        "placeholders": dict(redaction.get("placeholders") or DEFAULT_PLACEHOLDERS),
        "model": generation.get("model"),
        "max_attempts": int(generation.get("max_attempts", 3)),
        "retry_delay": float(generation.get("retry_delay", 0.5)),
        "timeout": float(generation.get("timeout", 120)),
        "store_backend": store.get("backend", "memory"),
        "store_path": store.get("path", DEFAULT_STORE_PATH),
        "log_level": str(logging_cfg.get("level", "INFO")).upper(),
        "log_file": logging_cfg.get("file"),
    }
    _validate(cfg)
    return cfg


def _validate(cfg: dict[str, Any]) -> None:
    if cfg["max_input_length"] <= 0:
        raise ConfigError("redaction.max_input_length must be positive")
    if not cfg["use_presidio"] and not cfg["use_regex"]:
        raise ConfigError("at least one of redaction.use_presidio / use_regex must be on")
    if cfg["store_backend"] not in ("memory", "sqlite"):
        raise ConfigError(f"unknown store backend {cfg['store_backend']!r}")
    if cfg["max_attempts"] < 1:
        raise ConfigError("generation.max_attempts must be at least 1")


def load_from_yaml(path: str | Path) -> dict[str, Any]:
    """Load config from a YAML file."""
    with open(Path(path).expanduser()) as f:
        return load_config(yaml.safe_load(f))


def create_tagger(cfg: dict[str, Any]) -> EntityTagger:
    layers: list[EntityTagger] = []
    if cfg["use_regex"]:
        layers.append(RegexTagger())
    if cfg["use_presidio"]:
        layers.append(PresidioTagger(language=cfg["language"],
                                     score_threshold=cfg["score_threshold"]))
    return LayeredTagger(layers)


def create_redactor(cfg: dict[str, Any]) -> Redactor:
    policy = RedactionPolicy(
        max_input_length=cfg["max_input_length"],
        placeholders=cfg["placeholders"],
    )
    return Redactor(create_tagger(cfg), policy)


def create_store(cfg: dict[str, Any]) -> InsightStore:
    if cfg["store_backend"] == "sqlite":
        return SqliteInsightStore(cfg["store_path"])
    return MemoryInsightStore()


def create_text_generator(cfg: dict[str, Any]) -> TextGenerator:
    return AnthropicTextGenerator(
        model=cfg["model"],
        timeout=cfg["timeout"],
        max_attempts=cfg["max_attempts"],
        retry_delay=cfg["retry_delay"],
    )


def create_generators(
    cfg: dict[str, Any],
    *,
    llm: TextGenerator | None = None,
    store: InsightStore | None = None,
    redactor: Redactor | None = None,
) -> list[BaseInsightGenerator]:
    return default_generators(
        llm or create_text_generator(cfg),
        store or create_store(cfg),
        redactor or create_redactor(cfg),
    )


def create_orchestrator(
    cfg: dict[str, Any],
    sink: EventSink,
    *,
    llm: TextGenerator | None = None,
    store: InsightStore | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> GenerationOrchestrator:
    """Create a fully wired orchestrator from a config dict."""
    generators = create_generators(cfg, llm=llm, store=store)
    return GenerationOrchestrator(generators, sink, loop=loop)
