"""Repository layer: all SQL operations isolated here"""

import json

from sqlalchemy import text
from sqlalchemy.orm import Session

from hybrid_rag.config.settings import settings
from hybrid_rag.db.models import ChunkCreate
from hybrid_rag.retrieval.models import ChunkHit
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)

_CHUNK_COLUMNS = (
    "c.id AS chunk_id, c.document_id, c.document_name, c.chunk_index, "
    "c.chunk_text AS text, c.metadata, c.created_at"
)


class ChunkRepository:
    """
    Reads and writes rows of document_chunks (and creates their parent documents).

    The tables are expected to exist: document_chunks carries a pgvector
    `embedding` column and a `text_vector` tsvector column.
    """

    def __init__(self, session: Session):
        self.session = session

    def create_document(self, name: str) -> int:
        result = self.session.execute(
            text("INSERT INTO documents (name) VALUES (:name) RETURNING id"),
            {"name": name},
        )
        return result.scalar_one()

    def insert(self, chunk: ChunkCreate) -> int:
        result = self.session.execute(
            text(
                "INSERT INTO document_chunks "
                "(document_id, document_name, chunk_index, chunk_text, embedding, metadata, created_at) "
                "VALUES (:document_id, :document_name, :chunk_index, :text, "
                "CAST(:embedding AS vector), CAST(:metadata AS jsonb), now()) "
                "RETURNING id"
            ),
            {
                "document_id": chunk.document_id,
                "document_name": chunk.document_name,
                "chunk_index": chunk.chunk_index,
                "text": chunk.text,
                "embedding": str(chunk.embedding),
                "metadata": json.dumps(chunk.metadata) if chunk.metadata is not None else None,
            },
        )
        return result.scalar_one()

    def insert_batch(self, chunks: list[ChunkCreate]) -> list[int]:
        ids = [self.insert(c) for c in chunks]
        self.session.flush()
        logger.info("batch_inserted", count=len(ids))
        return ids

    def count(self, document_id: int | None = None) -> int:
        clause, params = _document_clause(document_id)
        return self.session.execute(
            text(f"SELECT COUNT(*) FROM document_chunks c WHERE TRUE{clause}"), params
        ).scalar_one()

    def search_semantic(
        self,
        embedding: list[float],
        limit: int,
        threshold: float = 0.0,
        document_id: int | None = None,
    ) -> list[ChunkHit]:
        """Cosine similarity via pgvector, best first."""
        clause, params = _document_clause(document_id)
        result = self.session.execute(
            text(
                f"SELECT {_CHUNK_COLUMNS}, "
                "1 - (c.embedding <=> CAST(:embedding AS vector)) AS score "
                "FROM document_chunks c "
                "WHERE c.embedding IS NOT NULL "
                f"AND 1 - (c.embedding <=> CAST(:embedding AS vector)) >= :threshold{clause} "
                "ORDER BY c.embedding <=> CAST(:embedding AS vector) LIMIT :limit"
            ),
            {"embedding": str(embedding), "threshold": threshold, "limit": limit, **params},
        )
        return [_to_hit(r) for r in result.fetchall()]

    def search_keyword(
        self,
        query: str,
        limit: int,
        document_id: int | None = None,
        advanced: bool = False,
    ) -> list[ChunkHit]:
        """
        Full-text search via tsvector.

        Plain mode feeds the query to plainto_tsquery. Advanced mode expects a
        query already in tsquery syntax (&, |, !) and uses to_tsquery.
        """
        parser = "to_tsquery" if advanced else "plainto_tsquery"
        clause, params = _document_clause(document_id)
        result = self.session.execute(
            text(
                f"SELECT {_CHUNK_COLUMNS}, ts_rank(c.text_vector, q) AS score "
                f"FROM document_chunks c, {parser}(CAST(:language AS regconfig), :query) q "
                f"WHERE c.text_vector @@ q{clause} "
                "ORDER BY score DESC, c.created_at DESC LIMIT :limit"
            ),
            {"query": query, "language": settings.fts_language, "limit": limit, **params},
        )
        return [_to_hit(r) for r in result.fetchall()]


def _document_clause(document_id: int | None) -> tuple[str, dict]:
    if document_id is None:
        return "", {}
    return " AND c.document_id = :document_id", {"document_id": document_id}


def _to_hit(row) -> ChunkHit:
    return ChunkHit(
        chunk_id=row.chunk_id,
        document_id=row.document_id,
        document_name=row.document_name,
        chunk_index=row.chunk_index,
        text=row.text,
        metadata=row.metadata,
        created_at=row.created_at,
        score=row.score,
    )
