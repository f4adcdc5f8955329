"""End-to-end retrieval pipeline: classify → execute → rank → assemble."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from .config import DEFAULT_LIMIT
from .context_assembler import DEFAULT_BUDGET, ContextAssembler
from .formatting import Formatter
from .models import RetrievalResult, RetrievalTrace
from .query_classifier import QueryClassifier
from .ranker import Ranker
from .search_executor import SearchExecutor
from .storage import GraphStore, MetadataStore, VectorStore

logger = logging.getLogger(__name__)

STRUCTURAL_TYPES = ("model", "controller", "service", "job", "mailer", "component", "graphql")


class Retriever:
    """Answer natural-language queries with token-budgeted context.

    Each :meth:`retrieve` call is independent; concurrent calls are safe as
    long as the stores are.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        metadata_store: MetadataStore,
        graph_store: GraphStore,
        embedding_provider: Any,
        formatter: Optional[Formatter] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.metadata_store = metadata_store
        self.formatter = formatter
        self.limit = limit
        self.classifier = QueryClassifier()
        self.executor = SearchExecutor(
            vector_store=vector_store,
            metadata_store=metadata_store,
            graph_store=graph_store,
            embedding_provider=embedding_provider,
        )
        self.ranker = Ranker(metadata_store)
        self.assembler = ContextAssembler(metadata_store)

    def retrieve(
        self,
        query: str,
        budget: int = DEFAULT_BUDGET,
        limit: Optional[int] = None,
    ) -> RetrievalResult:
        """Run the pipeline for *query*.

        *limit* caps the candidates each strategy returns; it defaults to
        the limit the retriever was built with.
        """
        start = time.perf_counter()

        classification = self.classifier.classify(query)
        execution = self.executor.execute(query, classification, limit=limit or self.limit)
        ranked = self.ranker.rank(execution.candidates, classification)
        assembled = self.assembler.assemble(
            ranked,
            classification,
            structural_context=self.structural_overview(),
            budget=budget,
        )

        elapsed_ms = round((time.perf_counter() - start) * 1000, 1)
        trace = RetrievalTrace(
            classification=classification,
            strategy=execution.strategy,
            candidate_count=len(execution.candidates),
            ranked_count=len(ranked),
            tokens_used=assembled.tokens_used,
            elapsed_ms=elapsed_ms,
        )
        logger.info(
            "Retrieved %d candidates via %s strategy (%d tokens, %.1f ms)",
            len(execution.candidates), execution.strategy, assembled.tokens_used, elapsed_ms,
        )

        context = self.formatter.format(assembled) if self.formatter else assembled.context
        return RetrievalResult(
            context=context,
            sources=assembled.sources,
            classification=classification,
            strategy=execution.strategy,
            tokens_used=assembled.tokens_used,
            budget=budget,
            trace=trace,
        )

    def structural_overview(self) -> Optional[str]:
        """One-line summary of the indexed codebase, or ``None`` if empty."""
        try:
            total = self.metadata_store.count()
            if total == 0:
                return None
            counts = []
            for unit_type in STRUCTURAL_TYPES:
                count = len(self.metadata_store.find_by_type(unit_type))
                if count:
                    counts.append(f"{count} {unit_type}s")
        except Exception as exc:
            logger.warning("Structural overview unavailable: %s", exc)
            return None
        return f"Codebase: {total} units ({', '.join(counts)})"
