"""
Ranked-list producers for hybrid search.

SemanticRanker and KeywordRanker are the two independent sources the pipeline
fuses. The Postgres implementations read from pgvector and tsvector; database
failures surface as ProviderUnavailableError so the pipeline can degrade to
the remaining source.
"""

import abc
import re

from sqlalchemy.exc import SQLAlchemyError

from hybrid_rag.db.connection import get_session
from hybrid_rag.db.repository import ChunkRepository
from hybrid_rag.errors import ProviderUnavailableError
from hybrid_rag.retrieval.models import ChunkHit
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)

_BOOLEAN_OPERATORS = {"AND": "&", "OR": "|", "NOT": "!"}
_BINARY = {"&", "|"}
_DISALLOWED = re.compile(r"[^\w\s&|!<>\-]")
_OPERATOR_CHARS = re.compile(r"[&|!<>]")


def normalize_keyword_query(query: str) -> str:
    """Drop punctuation the full-text parser cannot take and collapse whitespace."""
    if not query:
        return ""
    return " ".join(_DISALLOWED.sub("", query).split())


def format_keyword_query(query: str) -> str:
    """
    Turn a user query into tsquery syntax.

    "python AND java"  -> "python & java"
    "python NOT java"  -> "python & ! java"
    Adjacent terms without an operator are joined with &. Only standalone
    tokens act as operators: runs of binary operators collapse to the first,
    dangling operators are dropped and operator characters inside a word
    split it into separate terms.
    """
    parts: list[str] = []
    for token in _keyword_tokens(query):
        if token in _BINARY:
            while parts and parts[-1] == "!":
                parts.pop()
            if parts and parts[-1] not in _BINARY:
                parts.append(token)
            continue
        if parts and parts[-1] not in _BINARY and parts[-1] != "!":
            parts.append("&")
        parts.append(token)

    while parts and (parts[-1] in _BINARY or parts[-1] == "!"):
        parts.pop()
    return " ".join(parts)


def _keyword_tokens(query: str) -> list[str]:
    tokens = []
    for raw in normalize_keyword_query(query).split():
        raw = _BOOLEAN_OPERATORS.get(raw, raw)
        if raw in _BINARY or raw == "!":
            tokens.append(raw)
            continue
        for term in _OPERATOR_CHARS.sub(" ", raw).split():
            term = term.strip("-")
            if term:
                tokens.append(term)
    return tokens


class SemanticRanker(abc.ABC):
    @abc.abstractmethod
    def search(
        self,
        query_vector: list[float],
        top_k: int,
        threshold: float,
        document_id: int | None = None,
    ) -> list[ChunkHit]:
        """Chunks sorted by vector similarity to the query vector, best first."""


class KeywordRanker(abc.ABC):
    @abc.abstractmethod
    def search(
        self, query: str, top_k: int, document_id: int | None = None, advanced: bool = False
    ) -> list[ChunkHit]:
        """Chunks sorted by full-text relevance, best first."""


class PgVectorSemanticRanker(SemanticRanker):
    def search(
        self,
        query_vector: list[float],
        top_k: int,
        threshold: float,
        document_id: int | None = None,
    ) -> list[ChunkHit]:
        try:
            with get_session() as session:
                hits = ChunkRepository(session).search_semantic(
                    query_vector, limit=top_k, threshold=threshold, document_id=document_id
                )
        except SQLAlchemyError as e:
            raise ProviderUnavailableError("semantic", str(e)) from e

        logger.debug("semantic_search_done", hits=len(hits), document_id=document_id)
        return hits


class PostgresKeywordRanker(KeywordRanker):
    def search(
        self, query: str, top_k: int, document_id: int | None = None, advanced: bool = False
    ) -> list[ChunkHit]:
        prepared = format_keyword_query(query) if advanced else normalize_keyword_query(query)
        if not prepared:
            return []

        try:
            with get_session() as session:
                hits = ChunkRepository(session).search_keyword(
                    prepared, limit=top_k, document_id=document_id, advanced=advanced
                )
        except SQLAlchemyError as e:
            raise ProviderUnavailableError("keyword", str(e)) from e

        logger.debug("keyword_search_done", hits=len(hits), query=prepared, advanced=advanced)
        return hits
