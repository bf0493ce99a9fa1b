"""Tests for the recursive text chunker.

Chunks must stay within chunk_size (before overlap is added), break on the
coarsest separator that works, and lose no words: joining the chunks of an
overlap-free split gives back the input modulo whitespace.
"""

import pytest

from hybrid_rag.ingestion.chunker import TextChunker, chunk_text

SENTENCES = " ".join(
    f"Sentence number {i} talks about retrieval, ranking and fusion." for i in range(40)
)


def _words(text: str) -> list[str]:
    return text.split()


class TestBasics:
    """Edge cases of chunk()."""

    def test_blank_input_gives_no_chunks(self) -> None:
        assert chunk_text("") == []
        assert chunk_text("   \n\n  \t ") == []

    def test_short_input_is_single_trimmed_chunk(self) -> None:
        assert chunk_text("  hello world  ", chunk_size=50, overlap=10) == ["hello world"]

    def test_non_positive_chunk_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=0)

    def test_defaults_come_from_settings(self) -> None:
        chunker = TextChunker()
        assert chunker.chunk_size == 500
        assert chunker.overlap == 100


class TestSplitting:
    """Separator priority and size bound."""

    def test_chunks_respect_chunk_size_without_overlap(self) -> None:
        chunks = chunk_text(SENTENCES, chunk_size=120, overlap=0)
        assert len(chunks) > 1
        assert all(len(c) <= 120 for c in chunks)

    def test_paragraphs_are_preferred_boundaries(self) -> None:
        text = "First paragraph here.\n\nSecond paragraph here.\n\nThird paragraph here."
        chunks = chunk_text(text, chunk_size=30, overlap=0)
        assert chunks == [
            "First paragraph here.",
            "Second paragraph here.",
            "Third paragraph here.",
        ]

    def test_sentence_separator_stays_with_preceding_part(self) -> None:
        text = "Alpha beta gamma. Delta epsilon zeta. Eta theta iota."
        chunks = chunk_text(text, chunk_size=40, overlap=0)
        assert chunks[0] == "Alpha beta gamma. Delta epsilon zeta."
        assert chunks[1] == "Eta theta iota."

    def test_unbreakable_text_falls_back_to_characters(self) -> None:
        chunks = chunk_text("x" * 25, chunk_size=10, overlap=0)
        assert chunks == ["x" * 10, "x" * 10, "x" * 5]

    def test_reconstruction_without_overlap(self) -> None:
        """Concatenated chunks carry exactly the words of the input, in order."""
        text = "Intro line.\n\n" + SENTENCES + "\nClosing line, with a comma; and more."
        chunks = chunk_text(text, chunk_size=150, overlap=0)
        assert _words(" ".join(chunks)) == _words(text)


class TestOverlap:
    """Chunk i > 0 is prefixed by the tail of chunk i - 1."""

    def test_overlap_prefixes_previous_tail(self) -> None:
        plain = chunk_text(SENTENCES, chunk_size=120, overlap=0)
        overlapped = chunk_text(SENTENCES, chunk_size=120, overlap=20)

        assert len(plain) == len(overlapped)
        assert overlapped[0] == plain[0]
        for previous, raw, current in zip(plain, plain[1:], overlapped[1:]):
            assert current.endswith(raw)
            assert current.startswith(previous[-20:].strip())

    def test_overlap_adds_space_at_word_boundary(self) -> None:
        chunks = chunk_text("aaaa bbbb cccc dddd", chunk_size=10, overlap=4)
        assert chunks == ["aaaa bbbb", "bbbb cccc dddd"]

    def test_removing_overlap_reconstructs_input(self) -> None:
        plain = chunk_text(SENTENCES, chunk_size=100, overlap=0)
        overlapped = chunk_text(SENTENCES, chunk_size=100, overlap=15)
        restored = [overlapped[0]] + [
            current[len(current) - len(raw) :] for raw, current in zip(plain[1:], overlapped[1:])
        ]
        assert _words(" ".join(restored)) == _words(SENTENCES)

    def test_zero_overlap_disables_prefix(self) -> None:
        assert chunk_text(SENTENCES, chunk_size=120, overlap=0) == chunk_text(
            SENTENCES, chunk_size=120, overlap=-5
        )
