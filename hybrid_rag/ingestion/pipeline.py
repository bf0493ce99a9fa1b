"""Ingestion pipeline: CSV -> chunks -> embeddings -> Postgres."""

import re
from pathlib import Path

import pandas as pd

from hybrid_rag.db.connection import get_session
from hybrid_rag.db.repository import ChunkRepository
from hybrid_rag.db.models import ChunkCreate
from hybrid_rag.ingestion.chunker import TextChunker
from hybrid_rag.services.embedding import BaseEmbeddingService, create_embedding_service
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)

REQUIRED_COLUMNS = ("document_name", "text")


class IngestionPipeline:
    """
    Loads plain-text documents from a CSV (document_name, text), splits them
    into overlapping chunks, embeds the chunks and stores them in Postgres.
    """

    def __init__(
        self,
        embedding_service: BaseEmbeddingService | None = None,
        chunker: TextChunker | None = None,
    ):
        self.embedding_service = embedding_service or create_embedding_service()
        self.chunker = chunker or TextChunker()

    def ingest_csv(self, csv_path: str | Path, skip_existing: bool = True) -> int:
        """Load CSV, chunk, embed, store. Returns the number of stored chunks."""
        csv_path = Path(csv_path)
        if not csv_path.exists():
            raise FileNotFoundError(f"CSV not found: {csv_path}")

        df = pd.read_csv(csv_path)
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"CSV must contain columns {list(REQUIRED_COLUMNS)}, missing {missing}")

        df = df.dropna(subset=["text"])
        logger.info("csv_loaded", documents=len(df))

        if skip_existing:
            with get_session() as session:
                existing = ChunkRepository(session).count()
            if existing > 0:
                logger.info("already_ingested", chunks=existing)
                return existing

        total = 0
        for row in df.itertuples(index=False):
            total += self.ingest_text(str(row.document_name), str(row.text))

        logger.info("ingestion_complete", documents=len(df), chunks=total)
        return total

    def ingest_text(self, document_name: str, text: str) -> int:
        """Chunk and embed one document. Chunks whose embedding failed are skipped."""
        chunks = self.chunker.chunk(self.clean_text(text))
        if not chunks:
            logger.warning("empty_document", document=document_name)
            return 0

        embeddings = self.embedding_service.embed_batch(chunks)
        failed = sum(1 for e in embeddings if e is None)
        if failed:
            logger.warning("chunks_not_embedded", document=document_name, failed=failed)

        with get_session() as session:
            repo = ChunkRepository(session)
            document_id = repo.create_document(document_name)
            rows = [
                ChunkCreate(
                    document_id=document_id,
                    document_name=document_name,
                    chunk_index=i,
                    text=chunk,
                    embedding=embedding,
                    metadata={"chunk_chars": len(chunk)},
                )
                for i, (chunk, embedding) in enumerate(zip(chunks, embeddings))
                if embedding is not None
            ]
            repo.insert_batch(rows)

        logger.info("document_ingested", document=document_name, chunks=len(rows))
        return len(rows)

    @staticmethod
    def clean_text(text: str) -> str:
        text = text.strip().strip('"').strip()
        text = re.sub(r"\[\d+\]", "", text)  # [1], [2], etc.
        text = re.sub(r"\*{1,2}(.+?)\*{1,2}", r"\1", text)  # **bold**, *italic*
        # Keep paragraph breaks for the chunker, collapse the rest
        paragraphs = [" ".join(p.split()) for p in re.split(r"\n\s*\n", text)]
        return "\n\n".join(p for p in paragraphs if p)
