"""docchat configuration.

Layers, later wins:
  1. Dataclass defaults below
  2. Global ~/.docchat/config.yaml   (model choices shared by every project)
  3. Project docchat.yaml            (in the working directory)
  4. DOCCHAT_EMBEDDING_MODEL, DOCCHAT_GENERATION_MODEL, DOCCHAT_REPHRASE_MODEL
  5. CLI flags, applied by the command that owns them

Provider credentials come from the environment (LiteLLM reads them there).
A config file holding anything that looks like a credential is rejected.
YAML is read with yaml.safe_load() only.
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

_GLOBAL_CONFIG_PATH: Path = Path.home() / ".docchat" / "config.yaml"
_PROJECT_CONFIG_NAME = "docchat.yaml"

# Credential-like key names. max_tokens and context_token_budget must not match.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)|(?:^|_)token$|(?:^|_)secret$|passw(?:or)?d|credential",
    re.IGNORECASE,
)

_ENV_MODEL_OVERRIDES: dict[str, str] = {
    "DOCCHAT_EMBEDDING_MODEL": "embedding",
    "DOCCHAT_GENERATION_MODEL": "generation",
    "DOCCHAT_REPHRASE_MODEL": "rephrase",
}


class ConfigError(ValueError):
    """A config file is unreadable, holds a credential, or sets an invalid value."""


@dataclass
class EmbeddingCfg:
    """``embedding:``. ``dimensions`` must match what the model returns."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 64
    timeout: float = 30.0


@dataclass
class GenerationCfg:
    """``generation:``. The answer model and its context budget."""

    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 1024
    context_token_budget: int = 6_000
    timeout: float = 60.0


@dataclass
class RephraseCfg:
    """``rephrase:``. The model that rewrites follow-up questions."""

    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 128
    timeout: float = 30.0


@dataclass
class RetrievalCfg:
    top_k: int = 3


@dataclass
class ChunkingCfg:
    """Sizes in characters."""

    chunk_size: int = 1000
    chunk_overlap: int = 200


@dataclass
class StoreCfg:
    path: str = ".docchat.db"
    timeout: float = 10.0


@dataclass
class IngestCfg:
    concurrency: int = 4


@dataclass
class DocChatConfig:
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    rephrase: RephraseCfg = field(default_factory=RephraseCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    store: StoreCfg = field(default_factory=StoreCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)


_SECTIONS: tuple[str, ...] = tuple(f.name for f in fields(DocChatConfig))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DocChatConfig:
    """Merge every layer into a validated :class:`DocChatConfig`.

    Args:
        project_dir: Where to look for ``docchat.yaml`` (default: CWD).
        global_config_path: Replaces ``~/.docchat/config.yaml`` (tests).

    Raises:
        ConfigError: On a credential-like key, a malformed file, or a value
            out of range.
    """
    layers = [
        global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH,
        (project_dir if project_dir is not None else Path.cwd()) / _PROJECT_CONFIG_NAME,
    ]
    cfg = DocChatConfig()
    for path in layers:
        if path.exists():
            cfg = _apply_layer(cfg, _read_yaml(path), path)

    for env_var, section in _ENV_MODEL_OVERRIDES.items():
        if model := os.environ.get(env_var):
            setattr(cfg, section, replace(getattr(cfg, section), model=model))

    _validate(cfg)
    return cfg


def ensure_global_config(global_config_path: Path | None = None) -> Path:
    """Write a starter ``~/.docchat/config.yaml`` unless one exists.

    The directory is created 0o700 and the file 0o600. Returns the path.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    if target.exists():
        return target

    defaults = DocChatConfig()
    starter = {
        "embedding": {
            "model": defaults.embedding.model,
            "dimensions": defaults.embedding.dimensions,
        },
        "generation": {"model": defaults.generation.model},
        "rephrase": {"model": defaults.rephrase.model},
    }
    header = (
        "# docchat global configuration: model choices only.\n"
        "# Provider keys belong in the environment, e.g.\n"
        "#   export OPENAI_API_KEY=sk-...\n\n"
    )
    target.write_text(header + yaml.safe_dump(starter, sort_keys=False), encoding="utf-8")
    target.chmod(0o600)
    return target


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse '{path}': {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"'{path}' must contain a mapping of sections.")
    _reject_credentials(data, path)
    return data


def _reject_credentials(data: dict[str, Any], source: Path, prefix: str = "") -> None:
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if _API_KEY_RE.search(str(key)):
            raise ConfigError(
                f"'{source}' contains '{dotted}'. Credentials are read from "
                "environment variables only; remove the key and export it instead, e.g.\n"
                f"    export {str(key).upper().replace('-', '_')}=<value>"
            )
        if isinstance(value, dict):
            _reject_credentials(value, source, dotted)


def _apply_layer(cfg: DocChatConfig, data: dict[str, Any], source: Path) -> DocChatConfig:
    """Return *cfg* with the sections of one YAML file laid over it."""
    for name, values in data.items():
        if name not in _SECTIONS:
            warnings.warn(f"Unknown config section '{name}' in '{source}', ignored.", UserWarning, stacklevel=3)
            continue
        if not values:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"'{name}' in '{source}' must be a mapping.")
        setattr(cfg, name, _override_section(getattr(cfg, name), name, values, source))
    return cfg


def _override_section(section: Any, name: str, values: dict[str, Any], source: Path) -> Any:
    # Each field is coerced to the type of its current value (str, int or float).
    known = {f.name for f in fields(section)}
    changes: dict[str, Any] = {}
    for key, raw in values.items():
        if key not in known:
            warnings.warn(f"Unknown key '{name}.{key}' in '{source}', ignored.", UserWarning, stacklevel=4)
            continue
        kind = type(getattr(section, key))
        try:
            changes[key] = kind(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"'{name}.{key}' in '{source}' must be {kind.__name__}, got {raw!r}."
            ) from exc
    return replace(section, **changes)


def _validate(cfg: DocChatConfig) -> None:
    checks = [
        (cfg.chunking.chunk_size >= 1, "chunking.chunk_size must be >= 1"),
        (
            0 <= cfg.chunking.chunk_overlap < cfg.chunking.chunk_size,
            "chunking.chunk_overlap must be >= 0 and smaller than chunking.chunk_size",
        ),
        (cfg.embedding.dimensions >= 1, "embedding.dimensions must be >= 1"),
        (cfg.embedding.batch_size >= 1, "embedding.batch_size must be >= 1"),
        (cfg.retrieval.top_k >= 1, "retrieval.top_k must be >= 1"),
        (cfg.ingest.concurrency >= 1, "ingest.concurrency must be >= 1"),
    ]
    for ok, message in checks:
        if not ok:
            raise ConfigError(message)
