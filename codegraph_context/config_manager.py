"""Read and write ``config.toml`` for codegraph-context.

Layout::

    [retrieval]
    budget = 8000
    limit = 20
    format = "claude"          # optional output formatter

    [storage]
    preset = "local"            # or "lance"
    vector_store = "in_memory"  # overrides the preset per role
    [storage.metadata_store_options]
    db_path = "~/.codegraph-context/index/metadata.db"

    [embeddings]
    model = "hash"
    host = "http://127.0.0.1:11434"

A missing or unreadable file yields defaults.  ``save_*`` helpers rewrite
one section and preserve the others.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

from . import config as _config

logger = logging.getLogger(__name__)

_STORAGE_ROLES = ("vector_store", "metadata_store", "graph_store", "embedding_provider")
_OPTION_TABLES = ("vector_store_options", "metadata_store_options", "embedding_options")


def _config_path(path: Optional[Path]) -> Path:
    return Path(path) if path is not None else _config.CONFIG_FILE


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    config_file = _config_path(path)
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config_file, exc)
        return {}


def _save_full_config(config: Dict[str, Any], path: Optional[Path] = None) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    config_file = _config_path(path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(config_file, "w") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", config_file, exc)
        return False


# ------------------------------------------------------------------
# Retrieval configuration
# ------------------------------------------------------------------

def load_retrieval_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Return ``[retrieval]`` merged over the built-in defaults."""
    section = load_full_config(path).get("retrieval", {})
    return {
        "budget": int(section.get("budget", _config.DEFAULT_BUDGET)),
        "limit": int(section.get("limit", _config.DEFAULT_LIMIT)),
        "format": section.get("format") or None,
    }


def save_retrieval_config(
    budget: int,
    limit: int,
    formatter: Optional[str] = None,
    path: Optional[Path] = None,
) -> bool:
    config = load_full_config(path)
    config["retrieval"] = {"budget": budget, "limit": limit}
    if formatter:
        config["retrieval"]["format"] = formatter
    return _save_full_config(config, path)


# ------------------------------------------------------------------
# Storage configuration
# ------------------------------------------------------------------

def load_storage_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Return the ``[storage]`` section, or an empty dict."""
    return dict(load_full_config(path).get("storage", {}))


def save_storage_config(preset: str, path: Optional[Path] = None, **overrides: Any) -> bool:
    """Save the storage preset plus any per-role adapter overrides.

    Preserves ``[retrieval]``, ``[embeddings]`` and other sections.
    """
    config = load_full_config(path)
    storage: Dict[str, Any] = {"preset": preset}
    for key, value in overrides.items():
        if key not in _STORAGE_ROLES and key not in _OPTION_TABLES:
            raise ValueError(
                f"Unknown storage setting: '{key}'. "
                f"Available: {', '.join(_STORAGE_ROLES + _OPTION_TABLES)}"
            )
        if value:
            storage[key] = value
    config["storage"] = storage
    return _save_full_config(config, path)


def build_retrieval_config(path: Optional[Path] = None) -> _config.RetrievalConfig:
    """Resolve the effective :class:`RetrievalConfig` from ``config.toml``.

    The ``[storage].preset`` supplies adapter defaults; explicit role keys
    and option tables override it.
    """
    from .builder import preset_config

    storage = load_storage_config(path)
    cfg = preset_config(storage.get("preset", _config.DEFAULT_PRESET))

    for role in _STORAGE_ROLES:
        if storage.get(role):
            setattr(cfg, role, storage[role])
    for table in _OPTION_TABLES:
        if storage.get(table):
            getattr(cfg, table).update(storage[table])

    embeddings = load_embedding_config(path)
    if embeddings.get("model"):
        cfg.embedding_options.setdefault("model", embeddings["model"])
        if embeddings["model"] != "hash" and not storage.get("embedding_provider"):
            cfg.embedding_provider = "ollama"
    if embeddings.get("host"):
        cfg.embedding_options.setdefault("host", embeddings["host"])

    retrieval = load_retrieval_config(path)
    cfg.budget = retrieval["budget"]
    cfg.limit = retrieval["limit"]
    cfg.formatter = retrieval["format"]
    return cfg


# ------------------------------------------------------------------
# Embedding configuration
# ------------------------------------------------------------------

def load_embedding_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load embedding configuration from ``[embeddings]`` section.

    Returns:
        Dict with at least ``model`` key, or empty dict.
    """
    return dict(load_full_config(path).get("embeddings", {}))


def save_embedding_config(model_key: str, host: str = "", path: Optional[Path] = None) -> bool:
    """Save embedding model choice to config TOML.

    Args:
        model_key: One of the keys from ``EMBEDDING_MODELS``
                   (e.g. ``"hash"``, ``"nomic-embed-text"``).
        host:      Ollama host for Ollama-backed models.
    """
    config = load_full_config(path)
    config["embeddings"] = {"model": model_key}
    if host:
        config["embeddings"]["host"] = host
    return _save_full_config(config, path)


def clear_embedding_config(path: Optional[Path] = None) -> bool:
    """Remove ``[embeddings]`` section from config, resetting to default."""
    config = load_full_config(path)
    config.pop("embeddings", None)
    return _save_full_config(config, path)


# ------------------------------------------------------------------
# Ollama checks
# ------------------------------------------------------------------

def validate_ollama_connection(endpoint: str = "http://127.0.0.1:11434") -> bool:
    """Check if Ollama is running and accessible."""
    try:
        req = urllib.request.Request(f"{endpoint}/api/tags", method="GET")
        with urllib.request.urlopen(req, timeout=3) as resp:
            return resp.status == 200
    except (urllib.error.URLError, TimeoutError):
        return False


def get_ollama_models(endpoint: str = "http://127.0.0.1:11434") -> List[str]:
    """Fetch available model names from Ollama, ``[]`` if unreachable."""
    try:
        req = urllib.request.Request(f"{endpoint}/api/tags", method="GET")
        with urllib.request.urlopen(req, timeout=5) as resp:
            data = json.loads(resp.read().decode("utf-8"))
            return [model["name"] for model in data.get("models", [])]
    except (urllib.error.URLError, TimeoutError, json.JSONDecodeError, KeyError):
        return []
