"""
Knowledge base retrieval and grounding classification.

Pipeline:
query -> embed -> cosine top-K with similarity floor -> hydrate chunks
      -> prompt addition + grounding tier
"""

from ragchat.config import GroundingConfig, RAGConfig
from ragchat.core.embeddings.base import Embedder, EmbeddingHealth
from ragchat.core.record_store.base import RecordStore
from ragchat.core.vector_store.base import VectorStore
from ragchat.models.retrieval import (
    GroundingConfidence,
    GroundingInfo,
    RagSource,
    RetrievedChunk,
    RetrievedContext,
)
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)

REASON_DISABLED = "RAG is disabled for this conversation."
REASON_EMPTY = "No relevant knowledge base sources were retrieved."
REASON_FAILED = "RAG retrieval failed, response generated without knowledge base context."
REASON_NO_EVIDENCE = "No source evidence available."
REASON_HIGH = "Multiple highly similar chunks support this answer."
REASON_MEDIUM = "Retrieved context is relevant but not strongly convergent."
REASON_LOW = "Retrieved context has weak similarity to the query."

RAG_PROMPT_HEADER = (
    "You have access to the following relevant context from the user's knowledge base. "
    "Use this information to inform your response when relevant, and cite the source "
    "document when you use information from it."
)
SOURCE_SEPARATOR = "\n\n---\n\n"


def format_rag_prompt(chunks: list[RetrievedChunk]) -> str:
    """Render retrieved chunks as a system prompt addition ("" when empty)."""
    if not chunks:
        return ""
    blocks = SOURCE_SEPARATOR.join(
        f"Source: {chunk.filename} (chunk {chunk.chunk_index + 1})\n{chunk.content}"
        for chunk in chunks
    )
    return f"{RAG_PROMPT_HEADER}\n\n---\n{blocks}\n---"


def classify_grounding(
    sources: list[RagSource], config: GroundingConfig | None = None
) -> GroundingInfo:
    """
    Classify retrieved evidence into a confidence tier.

    Pure function of the scores: high needs a high average and enough
    chunks, medium a moderate average, anything else is low.

    Args:
        sources: Retrieved sources with similarity scores
        config: Thresholds (defaults 0.86 / 0.72 / 2 chunks)

    Returns:
        GroundingInfo with average similarity rounded to 3 decimals
    """
    config = config or GroundingConfig()

    if not sources:
        return GroundingInfo(
            confidence=GroundingConfidence.LOW,
            avg_similarity=None,
            used_chunk_count=0,
            reason=REASON_NO_EVIDENCE,
        )

    avg = round(sum(source.score for source in sources) / len(sources), 3)
    count = len(sources)

    if avg >= config.high_similarity and count >= config.high_min_chunks:
        confidence, reason = GroundingConfidence.HIGH, REASON_HIGH
    elif avg >= config.medium_similarity:
        confidence, reason = GroundingConfidence.MEDIUM, REASON_MEDIUM
    else:
        confidence, reason = GroundingConfidence.LOW, REASON_LOW

    return GroundingInfo(
        confidence=confidence, avg_similarity=avg, used_chunk_count=count, reason=reason
    )


class RetrievalService:
    """
    Retrieves knowledge base context for a user turn.

    Retrieval failures never propagate from ``retrieve_for_turn``; they
    degrade to a low-confidence, no-evidence result.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        record_store: RecordStore,
        rag_config: RAGConfig,
        grounding_config: GroundingConfig,
    ):
        """
        Initialize retrieval service.

        Args:
            embedder: Query embedder (must match the indexing model)
            vector_store: Nearest-neighbour backend
            record_store: Chunk and document rows for hydration
            rag_config: top_k, similarity threshold, global enable flag
            grounding_config: Confidence thresholds
        """
        self.embedder = embedder
        self.vector_store = vector_store
        self.record_store = record_store
        self.rag_config = rag_config
        self.grounding_config = grounding_config

    async def retrieve(
        self, query: str, top_k: int | None = None, threshold: float | None = None
    ) -> RetrievedContext:
        """
        Embed the query and fetch the closest chunks above the similarity floor.

        Args:
            query: User message
            top_k: Override for the configured result cap
            threshold: Override for the configured similarity floor

        Returns:
            Retrieved chunks (ascending distance) and the prompt addition

        Raises:
            EmbeddingError: If the query cannot be embedded
            VectorStoreError: If the search fails
        """
        if not self.rag_config.enabled:
            return RetrievedContext(reason=REASON_DISABLED)

        limit = top_k if top_k is not None else self.rag_config.top_k
        floor = threshold if threshold is not None else self.rag_config.similarity_threshold

        vector = await self.embedder.embed(query)
        matches = await self.vector_store.search(vector, limit=limit, threshold=floor)
        if not matches:
            return RetrievedContext(reason=REASON_EMPTY)

        hydrated = await self.record_store.get_chunks_with_filenames(
            [match.chunk_id for match in matches]
        )

        chunks = []
        for match in matches:
            if match.chunk_id not in hydrated:
                # Document deleted between search and hydration
                continue
            chunk, filename = hydrated[match.chunk_id]
            chunks.append(
                RetrievedChunk(
                    content=chunk.content,
                    document_id=chunk.document_id,
                    filename=filename,
                    score=1.0 - match.distance,
                    chunk_index=chunk.chunk_index,
                    metadata=chunk.metadata,
                )
            )

        if not chunks:
            return RetrievedContext(reason=REASON_EMPTY)

        logger.debug(
            f"Retrieved {len(chunks)} chunks",
            extra={"top_k": limit, "threshold": floor, "scores": [c.score for c in chunks]},
        )
        return RetrievedContext(chunks=chunks, prompt_addition=format_rag_prompt(chunks))

    async def retrieve_for_turn(
        self, query: str, rag_enabled: bool = True
    ) -> tuple[RetrievedContext, list[RagSource], GroundingInfo]:
        """
        Retrieve context for a chat turn and classify grounding.

        Never raises: a disabled conversation, an empty result or a failure
        each yield low confidence with their own reason.

        Args:
            query: User message
            rag_enabled: Per-conversation switch

        Returns:
            (context, sources, grounding)
        """
        if not rag_enabled or not self.rag_config.enabled:
            return (
                RetrievedContext(reason=REASON_DISABLED),
                [],
                GroundingInfo(confidence=GroundingConfidence.LOW, reason=REASON_DISABLED),
            )

        try:
            context = await self.retrieve(query)
        except Exception as e:
            logger.error(f"RAG retrieval failed: {e}", extra={"error": str(e)})
            return (
                RetrievedContext(reason=REASON_FAILED),
                [],
                GroundingInfo(confidence=GroundingConfidence.LOW, reason=REASON_FAILED),
            )

        if not context.chunks:
            return (
                context,
                [],
                GroundingInfo(confidence=GroundingConfidence.LOW, reason=REASON_EMPTY),
            )

        sources = [RagSource.from_chunk(chunk) for chunk in context.chunks]
        return context, sources, classify_grounding(sources, self.grounding_config)

    async def check_health(self) -> EmbeddingHealth:
        """Report whether the embedding backend and model are available."""
        return await self.embedder.check_model()
