"""Configuration paths and defaults for codegraph-context."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

BASE_DIR = Path(
    os.environ.get("CODEGRAPH_CONTEXT_HOME", str(Path.home() / ".codegraph-context"))
).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
INDEX_DIR = BASE_DIR / "index"

DEFAULT_BUDGET = 8000
DEFAULT_LIMIT = 20
DEFAULT_PRESET = "local"


@dataclass
class RetrievalConfig:
    """Adapter choices for each store role plus per-adapter options."""

    vector_store: str = "in_memory"
    metadata_store: str = "in_memory"
    graph_store: str = "memory"
    embedding_provider: str = "hash"
    vector_store_options: Dict[str, Any] = field(default_factory=dict)
    metadata_store_options: Dict[str, Any] = field(default_factory=dict)
    embedding_options: Dict[str, Any] = field(default_factory=dict)
    budget: int = DEFAULT_BUDGET
    limit: int = DEFAULT_LIMIT
    formatter: Optional[str] = None


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    INDEX_DIR.mkdir(parents=True, exist_ok=True)
