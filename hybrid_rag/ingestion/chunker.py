"""
Recursive character text splitter.

Tries the coarsest separator first (paragraphs, lines, sentence punctuation,
words) and only falls back to fixed-width character slices when nothing else
keeps a passage under chunk_size. Consecutive chunks share the last `overlap`
characters of the previous chunk, so text cut at a boundary stays retrievable
from both sides.
"""

from hybrid_rag.config.settings import settings
from hybrid_rag.logger import get_logger

logger = get_logger(__name__)

# Priority order. "" is the character-level terminal case.
SEPARATORS = ["\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", ""]


class TextChunker:
    def __init__(self, chunk_size: int | None = None, overlap: int | None = None):
        self.chunk_size = chunk_size if chunk_size is not None else settings.chunk_size
        self.overlap = overlap if overlap is not None else settings.chunk_overlap
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    def chunk(self, text: str) -> list[str]:
        """Split text into overlapping passages. Blank input gives []."""
        if not text or not text.strip():
            return []

        chunks = self._split(text, SEPARATORS)
        chunks = self._add_overlap(chunks)

        logger.debug(
            "text_chunked",
            length=len(text),
            chunks=len(chunks),
            chunk_size=self.chunk_size,
            overlap=self.overlap,
        )
        return chunks

    def _split(self, text: str, separators: list[str]) -> list[str]:
        if len(text) <= self.chunk_size:
            stripped = text.strip()
            return [stripped] if stripped else []

        for i, separator in enumerate(separators):
            if separator == "":
                return self._split_characters(text)

            if separator not in text:
                continue

            chunks: list[str] = []
            buffer = ""
            parts = text.split(separator)
            last = len(parts) - 1

            for idx, part in enumerate(parts):
                part = part.strip()
                if not part:
                    continue
                # Separator goes back between parts, never after the final one
                piece = part + separator if idx < last else part

                if len(buffer) + len(piece) <= self.chunk_size:
                    buffer += piece
                    continue

                if buffer.strip():
                    chunks.append(buffer.strip())

                if len(piece) > self.chunk_size:
                    chunks.extend(self._split(piece, separators[i + 1 :]))
                    buffer = ""
                else:
                    buffer = piece

            if buffer.strip():
                chunks.append(buffer.strip())

            if chunks:
                return chunks

        return []

    def _split_characters(self, text: str) -> list[str]:
        chunks = []
        for start in range(0, len(text), self.chunk_size):
            piece = text[start : start + self.chunk_size].strip()
            if piece:
                chunks.append(piece)
        return chunks

    def _add_overlap(self, chunks: list[str]) -> list[str]:
        if len(chunks) <= 1 or self.overlap <= 0:
            return chunks

        result = [chunks[0]]
        for previous, current in zip(chunks, chunks[1:]):
            tail = previous[-self.overlap :]
            if not tail[-1].isspace():
                tail += " "
            result.append((tail + current).strip())
        return result


def chunk_text(text: str, chunk_size: int | None = None, overlap: int | None = None) -> list[str]:
    return TextChunker(chunk_size, overlap).chunk(text)
