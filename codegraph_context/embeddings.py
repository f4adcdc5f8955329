"""Embedding providers used by the vector strategy and by indexing.

Supported models (configure via ``[embeddings].model`` in ``config.toml``):

================= ========= ====== ==================================
Key               Backend   Dim    Notes
================= ========= ====== ==================================
hash              local      256   No model, keyword-level similarity
nomic-embed-text  Ollama     768   Good general code/text embeddings
mxbai-embed-large Ollama    1024   Larger, slower, better recall
================= ========= ====== ==================================

Provider errors (connection refused, bad JSON) are not caught here; wrap a
provider in :class:`~codegraph_context.resilience.RetryableProvider` to add
retries and a circuit breaker.
"""

from __future__ import annotations

import json
import logging
import math
import re
import urllib.request
from abc import ABC, abstractmethod
from hashlib import blake2b
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

DEFAULT_OLLAMA_HOST = "http://127.0.0.1:11434"


# ===================================================================
# Model Registry
# ===================================================================

EMBEDDING_MODELS: Dict[str, Dict[str, Any]] = {
    "hash": {
        "name": "Hash Embedding",
        "backend": "hash",
        "dim": 256,
        "description": "Zero-dependency default, no semantics",
    },
    "nomic-embed-text": {
        "name": "Nomic Embed Text",
        "backend": "ollama",
        "dim": 768,
        "description": "Local Ollama model, good general quality",
    },
    "mxbai-embed-large": {
        "name": "mxbai Embed Large",
        "backend": "ollama",
        "dim": 1024,
        "description": "Local Ollama model, higher recall",
    },
}


class EmbeddingProvider(ABC):
    """Turns text into fixed-length vectors."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        ...

    def embed_batch(self, texts: Iterable[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]

    @property
    @abstractmethod
    def dimensions(self) -> int:
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...


# ===================================================================
# HashEmbeddingProvider  (Zero-dependency default)
# ===================================================================

class HashEmbeddingProvider(EmbeddingProvider):
    """Deterministic token-hashing embedder.

    Each identifier-like token is hashed into one of ``dim`` buckets with a
    hash-derived sign, then the vector is L2-normalised.  Texts sharing
    tokens land close together, which is enough for tests and small
    projects without a model server.
    """

    def __init__(self, dim: int = 256) -> None:
        self.dim = dim

    def embed(self, text: str) -> List[float]:
        vec = [0.0] * self.dim
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return vec
        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dim
            sign = 1.0 if (digest[4] & 1) == 0 else -1.0
            vec[idx] += sign
        return _l2_normalize(vec)

    @property
    def dimensions(self) -> int:
        return self.dim

    @property
    def model_name(self) -> str:
        return "hash"


# ===================================================================
# OllamaEmbeddingProvider
# ===================================================================

class OllamaEmbeddingProvider(EmbeddingProvider):
    """Embeddings from a local Ollama server via ``POST /api/embed``."""

    def __init__(
        self,
        model: str = "nomic-embed-text",
        host: str = DEFAULT_OLLAMA_HOST,
        timeout: float = 30.0,
    ) -> None:
        self.model = model
        self.host = host.rstrip("/")
        self.timeout = timeout
        self._dimensions: Optional[int] = EMBEDDING_MODELS.get(model, {}).get("dim")

    def embed(self, text: str) -> List[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Iterable[str]) -> List[List[float]]:
        text_list = list(texts)
        if not text_list:
            return []
        payload = self._post("/api/embed", {"model": self.model, "input": text_list})
        vectors = payload["embeddings"]
        if vectors:
            self._dimensions = len(vectors[0])
        return vectors

    @property
    def dimensions(self) -> int:
        if self._dimensions is None:
            self.embed("dimension check")
        return self._dimensions or 0

    @property
    def model_name(self) -> str:
        return self.model

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        req = urllib.request.Request(
            f"{self.host}{path}",
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        logger.debug("POST %s%s (model=%s)", self.host, path, self.model)
        with urllib.request.urlopen(req, timeout=self.timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))


def _l2_normalize(vec: List[float]) -> List[float]:
    norm = math.sqrt(sum(v * v for v in vec))
    if norm < 1e-12:
        return vec
    return [v / norm for v in vec]
