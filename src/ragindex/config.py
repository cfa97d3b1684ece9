"""ragindex configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (RAGINDEX_EMBEDDING_MODEL, RAGINDEX_DB)
  3. Per-project ragindex.yaml
  4. Global ~/.ragindex/config.yaml  (defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ragindex.ingest.conversation import ConversationChunker
from ragindex.ingest.embedder import EmbeddingConfig
from ragindex.ingest.plaintext import PlainTextChunker
from ragindex.rag.context import DEFAULT_TOKEN_BUDGET
from ragindex.rag.retriever import RetrieverConfig

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".ragindex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "ragindex.yaml"

# Fields that suggest an API key are forbidden in global config.
# Does NOT match legitimate config keys like token_budget or max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token (suffix)
    r"|^token$"                  # exactly "token"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret"
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "chunking", "retrieval", "maintenance", "database"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding service configuration (ragindex.yaml: embedding:)."""

    model: str = EmbeddingConfig.model
    timeout: float = EmbeddingConfig.timeout
    num_retries: int = EmbeddingConfig.num_retries
    batch_size: int = EmbeddingConfig.batch_size
    batch_delay: float = EmbeddingConfig.batch_delay
    max_tokens: int = EmbeddingConfig.max_tokens


@dataclass
class ChunkingCfg:
    """Chunk sizes in approximate tokens (ragindex.yaml: chunking:)."""

    chunk_size: int = 512
    overlap: float = 0.10
    conversation_chunk_chars: int = 6_000


@dataclass
class RetrievalCfg:
    """Hybrid retrieval configuration (ragindex.yaml: retrieval:)."""

    top_k: int = 10
    overfetch_factor: int = 5
    vector_weight: float = 0.5
    lexical_weight: float = 0.5
    token_budget: int = DEFAULT_TOKEN_BUDGET


@dataclass
class MaintenanceCfg:
    """Eviction policy (ragindex.yaml: maintenance:).

    Attributes:
        retention_days: Documents older than this many days are evicted by
            ``ragindex evict``. None disables age-based eviction.
    """

    retention_days: int | None = None


@dataclass
class DatabaseCfg:
    """Index database location (ragindex.yaml: database:)."""

    path: str = ".ragindex.db"


@dataclass
class RagIndexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    maintenance: MaintenanceCfg = field(default_factory=MaintenanceCfg)
    database: DatabaseCfg = field(default_factory=DatabaseCfg)

    def embedding_config(self) -> EmbeddingConfig:
        e = self.embedding
        return EmbeddingConfig(
            model=e.model,
            timeout=e.timeout,
            num_retries=e.num_retries,
            batch_size=e.batch_size,
            batch_delay=e.batch_delay,
            max_tokens=e.max_tokens,
        )

    def plain_chunker(self) -> PlainTextChunker:
        return PlainTextChunker(self.chunking.chunk_size, self.chunking.overlap)

    def conversation_chunker(self) -> ConversationChunker:
        """Conversation chunks are budgeted in characters; chunkers count ~4 chars per token."""
        return ConversationChunker(chunk_size=self.chunking.conversation_chunk_chars // 4)

    def retriever_config(self) -> RetrieverConfig:
        r = self.retrieval
        try:
            return RetrieverConfig(
                top_k=r.top_k,
                overfetch_factor=r.overfetch_factor,
                vector_weight=r.vector_weight,
                lexical_weight=r.lexical_weight,
            )
        except ValueError as exc:
            raise ConfigError(f"Invalid retrieval config: {exc}") from exc


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: RagIndexConfig) -> None:
    days = cfg.maintenance.retention_days
    if days is not None and days < 1:
        raise ConfigError(
            f"maintenance.retention_days must be a positive number of days, got {days}.\n"
            "  Omit the key to disable age-based eviction."
        )
    if cfg.chunking.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {cfg.chunking.chunk_size}")
    if not 0.0 <= cfg.chunking.overlap < 1.0:
        raise ConfigError(f"chunking.overlap must be in [0.0, 1.0), got {cfg.chunking.overlap}")
    if cfg.chunking.conversation_chunk_chars < 4:
        raise ConfigError(
            "chunking.conversation_chunk_chars must be >= 4, "
            f"got {cfg.chunking.conversation_chunk_chars}"
        )
    if cfg.embedding.timeout <= 0:
        raise ConfigError(f"embedding.timeout must be positive, got {cfg.embedding.timeout}")
    cfg.retriever_config()


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> RagIndexConfig:
    """Build a *RagIndexConfig* from a merged raw YAML dict."""
    cfg = RagIndexConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
            num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            batch_delay=float(e.get("batch_delay", cfg.embedding.batch_delay)),
            max_tokens=int(e.get("max_tokens", cfg.embedding.max_tokens)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            overlap=float(c.get("overlap", cfg.chunking.overlap)),
            conversation_chunk_chars=int(
                c.get("conversation_chunk_chars", cfg.chunking.conversation_chunk_chars)
            ),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            overfetch_factor=int(r.get("overfetch_factor", cfg.retrieval.overfetch_factor)),
            vector_weight=float(r.get("vector_weight", cfg.retrieval.vector_weight)),
            lexical_weight=float(r.get("lexical_weight", cfg.retrieval.lexical_weight)),
            token_budget=int(r.get("token_budget", cfg.retrieval.token_budget)),
        )

    if "maintenance" in data:
        m = data["maintenance"] or {}
        days = m.get("retention_days", cfg.maintenance.retention_days)
        cfg.maintenance = MaintenanceCfg(
            retention_days=int(days) if days is not None else None,
        )

    if "database" in data:
        d = data["database"] or {}
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    return cfg


def _apply_env_overrides(cfg: RagIndexConfig) -> RagIndexConfig:
    """Apply RAGINDEX_* environment variable overrides (layer 2)."""
    if model := os.environ.get("RAGINDEX_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db := os.environ.get("RAGINDEX_DB"):
        cfg.database.path = db
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RagIndexConfig:
    """Load and return a merged *RagIndexConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *ragindex.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg
