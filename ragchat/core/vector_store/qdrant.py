"""
Qdrant vector store implementation.

Vectors live in a Qdrant collection keyed by chunk ID; chunk and document
rows stay in the record store.
"""

from uuid import NAMESPACE_DNS, UUID, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    HnswConfigDiff,
    MatchValue,
    OptimizersConfigDiff,
    PointStruct,
    ScalarQuantization,
    ScalarQuantizationConfig,
    ScalarType,
    VectorParams,
)

from ragchat.core.record_store.base import RecordStore
from ragchat.core.vector_store.base import VectorMatch, VectorStore
from ragchat.models.document import Chunk
from ragchat.utils.exceptions import ValidationError, VectorStoreError
from ragchat.utils.logger import get_logger

logger = get_logger(__name__)


class QdrantStore(VectorStore):
    """
    Qdrant-backed vector store for chunk embeddings.

    Features:
    - gRPC connection option
    - HNSW indexing for fast search
    - Optional int8 quantization
    - Payload index on document_id for per-document deletes

    Deleting a document removes its points first and its rows second; the
    two backends do not share a transaction.
    """

    def __init__(
        self,
        record_store: RecordStore,
        host: str = "localhost",
        port: int = 6333,
        collection_name: str = "chunks",
        vector_size: int = 768,
        use_grpc: bool = False,
        use_quantization: bool = False,
        hnsw_m: int = 16,
        hnsw_ef_construct: int = 100,
        on_disk: bool = False,
        batch_size: int = 100,
        timeout: int = 30,
    ):
        """
        Initialize Qdrant store.

        Args:
            record_store: Store holding chunk and document rows
            host: Qdrant host
            port: Qdrant port (6333 for HTTP, 6334 for gRPC)
            collection_name: Collection name
            vector_size: Embedding dimension
            use_grpc: Use gRPC connection
            use_quantization: Use int8 scalar quantization
            hnsw_m: HNSW M parameter (connections per node)
            hnsw_ef_construct: HNSW ef_construct parameter
            on_disk: Store vectors on disk (reduces RAM usage)
            batch_size: Points per upsert request
            timeout: Request timeout in seconds
        """
        self.record_store = record_store
        self.host = host
        self.port = port
        self.collection_name = collection_name
        self.vector_size = vector_size
        self.use_grpc = use_grpc
        self.use_quantization = use_quantization
        self.hnsw_m = hnsw_m
        self.hnsw_ef_construct = hnsw_ef_construct
        self.on_disk = on_disk
        self.batch_size = batch_size
        self.timeout = timeout
        self.client: AsyncQdrantClient | None = None

    def _to_uuid(self, id_str: str) -> str:
        """Map a chunk ID to a stable UUID point ID."""
        try:
            UUID(id_str)
            return id_str
        except ValueError:
            return str(uuid5(NAMESPACE_DNS, id_str))

    async def connect(self) -> None:
        """
        Establish connection to Qdrant.

        Raises:
            VectorStoreError: If connection fails
        """
        if self.client is None:
            try:
                self.client = AsyncQdrantClient(
                    host=self.host,
                    port=self.port,
                    prefer_grpc=self.use_grpc,
                    timeout=self.timeout,
                )
            except Exception as e:
                logger.error(
                    f"Failed to connect to Qdrant: {e}",
                    extra={"host": self.host, "port": self.port, "error": str(e)},
                )
                raise VectorStoreError(f"Failed to connect to Qdrant: {e}") from e

    async def initialize(self) -> None:
        """
        Create the collection if missing.

        Raises:
            VectorStoreError: If initialization fails
        """
        await self.record_store.initialize()
        try:
            await self.connect()

            collections = await self.client.get_collections()
            collection_names = [col.name for col in collections.collections]
            if self.collection_name in collection_names:
                return

            vectors_config = VectorParams(
                size=self.vector_size,
                distance=Distance.COSINE,
                hnsw_config=HnswConfigDiff(
                    m=self.hnsw_m,
                    ef_construct=self.hnsw_ef_construct,
                    full_scan_threshold=10000,
                ),
                on_disk=self.on_disk,
            )
            if self.use_quantization:
                vectors_config.quantization_config = ScalarQuantization(
                    scalar=ScalarQuantizationConfig(
                        type=ScalarType.INT8,
                        quantile=0.99,
                        always_ram=True,
                    )
                )

            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=vectors_config,
                optimizers_config=OptimizersConfigDiff(indexing_threshold=20000),
            )
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name="document_id",
                field_schema="keyword",
            )
            logger.info(f"Created Qdrant collection {self.collection_name}")
        except Exception as e:
            logger.error(
                f"Failed to initialize Qdrant collection: {e}",
                extra={"collection": self.collection_name, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to initialize Qdrant collection: {e}") from e

    async def add_chunks(self, chunks: list[Chunk], embeddings: list[list[float]]) -> None:
        if len(chunks) != len(embeddings):
            raise ValidationError(
                "Chunk and embedding counts differ",
                {"chunks": len(chunks), "embeddings": len(embeddings)},
            )

        await self.record_store.add_chunks(chunks)
        try:
            await self.connect()
            for i in range(0, len(chunks), self.batch_size):
                points = [
                    PointStruct(
                        id=self._to_uuid(chunk.id),
                        vector=list(vector),
                        payload={"chunk_id": chunk.id, "document_id": chunk.document_id},
                    )
                    for chunk, vector in zip(
                        chunks[i : i + self.batch_size], embeddings[i : i + self.batch_size]
                    )
                ]
                await self.client.upsert(
                    collection_name=self.collection_name, points=points, wait=True
                )
        except Exception as e:
            logger.error(
                f"Failed to upsert chunk vectors: {e}",
                extra={"count": len(chunks), "error": str(e)},
            )
            raise VectorStoreError(f"Failed to upsert chunk vectors: {e}") from e

    async def search(
        self, vector: list[float], limit: int = 5, threshold: float = 0.0
    ) -> list[VectorMatch]:
        if limit <= 0:
            return []
        await self.connect()

        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=limit,
                score_threshold=threshold,
                with_payload=True,
            )
        except Exception as e:
            raise VectorStoreError(f"Qdrant search failed: {e}") from e

        max_distance = 1.0 - threshold
        matches = []
        for point in response.points:
            distance = 1.0 - point.score
            if distance <= max_distance:
                matches.append(VectorMatch(chunk_id=point.payload["chunk_id"], distance=distance))
        return matches

    async def delete_document(self, document_id: str) -> None:
        await self.connect()
        try:
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(
                    filter=Filter(
                        must=[
                            FieldCondition(key="document_id", match=MatchValue(value=document_id))
                        ]
                    )
                ),
                wait=True,
            )
        except Exception as e:
            logger.error(
                f"Failed to delete vectors for {document_id}: {e}",
                extra={"document_id": document_id, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to delete document vectors: {e}") from e

        await self.record_store.delete_document(document_id)

    async def count(self) -> int:
        await self.connect()
        response = await self.client.count(collection_name=self.collection_name)
        return response.count

    async def close(self) -> None:
        """Close the connection to Qdrant."""
        if self.client is not None:
            await self.client.close()
            self.client = None
