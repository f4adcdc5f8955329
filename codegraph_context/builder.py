"""Wire concrete store adapters into a :class:`Retriever`.

Adapters are chosen per store role by name.  Presets bundle a typical
choice for each role::

    memory  everything in-process, nothing persisted
    local   in-memory vectors, SQLite metadata, hash embeddings
    lance   LanceDB vectors, SQLite metadata, Ollama embeddings

Unknown preset or adapter names raise :class:`ValueError` naming the bad
value and the valid choices.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from . import config as _config
from .config import RetrievalConfig
from .dependency_graph import DependencyGraph
from .embeddings import EmbeddingProvider, HashEmbeddingProvider, OllamaEmbeddingProvider
from .formatting import Formatter, get_formatter
from .models import Unit
from .resilience import CircuitBreaker, RetryableProvider
from .retriever import Retriever
from .storage import (
    InMemoryMetadataStore,
    InMemoryVectorStore,
    MemoryGraphStore,
    MetadataStore,
    SQLiteMetadataStore,
    VectorStore,
    index_units,
)

logger = logging.getLogger(__name__)

PRESETS: Dict[str, Dict[str, str]] = {
    "memory": {
        "vector_store": "in_memory",
        "metadata_store": "in_memory",
        "graph_store": "memory",
        "embedding_provider": "hash",
    },
    "local": {
        "vector_store": "in_memory",
        "metadata_store": "sqlite",
        "graph_store": "memory",
        "embedding_provider": "hash",
    },
    "lance": {
        "vector_store": "lance",
        "metadata_store": "sqlite",
        "graph_store": "memory",
        "embedding_provider": "ollama",
    },
}


def preset_config(name: str) -> RetrievalConfig:
    """Return a fresh :class:`RetrievalConfig` for the named preset."""
    if name not in PRESETS:
        raise ValueError(f"Unknown preset: '{name}'. Available: {', '.join(PRESETS)}")
    return RetrievalConfig(**PRESETS[name])


def _unknown(role: str, value: str, choices: Dict[str, Any]) -> ValueError:
    return ValueError(f"Unknown {role}: '{value}'. Available: {', '.join(choices)}")


def _lance_vector_store(options: Dict[str, Any]) -> VectorStore:
    from .vector_store import LanceVectorStore

    options = dict(options)
    options.setdefault("db_path", _config.INDEX_DIR / "lancedb")
    return LanceVectorStore(**options)


def _sqlite_metadata_store(options: Dict[str, Any]) -> MetadataStore:
    options = dict(options)
    db_path = options.pop("db_path", None)
    if db_path is None:
        _config.ensure_base_dirs()
        db_path = _config.INDEX_DIR / "metadata.db"
    return SQLiteMetadataStore(db_path=db_path, **options)


def _ollama_provider(options: Dict[str, Any]) -> EmbeddingProvider:
    options = dict(options)
    max_retries = options.pop("max_retries", 3)
    provider = OllamaEmbeddingProvider(**options)
    return RetryableProvider(provider, max_retries=max_retries, circuit_breaker=CircuitBreaker())


def _hash_provider(options: Dict[str, Any]) -> EmbeddingProvider:
    options = dict(options)
    options.pop("model", None)
    options.pop("host", None)
    return HashEmbeddingProvider(**options)


VECTOR_STORES: Dict[str, Callable[[Dict[str, Any]], VectorStore]] = {
    "in_memory": lambda options: InMemoryVectorStore(),
    "lance": _lance_vector_store,
}

METADATA_STORES: Dict[str, Callable[[Dict[str, Any]], MetadataStore]] = {
    "in_memory": lambda options: InMemoryMetadataStore(),
    "sqlite": _sqlite_metadata_store,
}

GRAPH_STORES = ("memory",)

EMBEDDING_PROVIDERS: Dict[str, Callable[[Dict[str, Any]], EmbeddingProvider]] = {
    "hash": _hash_provider,
    "ollama": _ollama_provider,
}


class Builder:
    """Construct stores and a retriever from a :class:`RetrievalConfig`."""

    def __init__(self, config: Optional[RetrievalConfig] = None) -> None:
        self.config = config if config is not None else preset_config(_config.DEFAULT_PRESET)

    def build_retriever(self, graph: Optional[DependencyGraph] = None) -> Retriever:
        """Build a retriever over whatever the stores already hold."""
        return Retriever(
            vector_store=self.build_vector_store(),
            metadata_store=self.build_metadata_store(),
            graph_store=self.build_graph_store(graph),
            embedding_provider=self.build_embedding_provider(),
            formatter=self.build_formatter(),
            limit=self.config.limit,
        )

    def build_vector_store(self) -> VectorStore:
        factory = VECTOR_STORES.get(self.config.vector_store)
        if factory is None:
            raise _unknown("vector_store", self.config.vector_store, VECTOR_STORES)
        return factory(self.config.vector_store_options)

    def build_metadata_store(self) -> MetadataStore:
        factory = METADATA_STORES.get(self.config.metadata_store)
        if factory is None:
            raise _unknown("metadata_store", self.config.metadata_store, METADATA_STORES)
        return factory(self.config.metadata_store_options)

    def build_graph_store(self, graph: Optional[DependencyGraph] = None) -> MemoryGraphStore:
        if self.config.graph_store not in GRAPH_STORES:
            raise _unknown("graph_store", self.config.graph_store, dict.fromkeys(GRAPH_STORES))
        return MemoryGraphStore(graph)

    def build_embedding_provider(self) -> EmbeddingProvider:
        factory = EMBEDDING_PROVIDERS.get(self.config.embedding_provider)
        if factory is None:
            raise _unknown("embedding_provider", self.config.embedding_provider, EMBEDDING_PROVIDERS)
        provider = factory(self.config.embedding_options)
        logger.debug("Built %s embedding provider (%s)", self.config.embedding_provider, provider.model_name)
        return provider

    def build_formatter(self) -> Optional[Formatter]:
        if not self.config.formatter:
            return None
        return get_formatter(self.config.formatter)

    def build_indexed_retriever(
        self,
        units: Iterable[Unit],
        graph: Optional[DependencyGraph] = None,
    ) -> Retriever:
        """Build every store, load *units* into them, and return a retriever.

        Persistent stores are emptied first so the index holds exactly
        *units*, never leftovers from an earlier run.
        """
        vector_store = self.build_vector_store()
        metadata_store = self.build_metadata_store()
        graph_store = self.build_graph_store(graph)
        embedding_provider = self.build_embedding_provider()
        formatter = self.build_formatter()

        vector_store.clear()
        metadata_store.clear()
        index_units(
            units,
            metadata_store,
            graph_store=graph_store,
            vector_store=vector_store,
            embedder=embedding_provider,
        )
        return Retriever(
            vector_store=vector_store,
            metadata_store=metadata_store,
            graph_store=graph_store,
            embedding_provider=embedding_provider,
            formatter=formatter,
            limit=self.config.limit,
        )
