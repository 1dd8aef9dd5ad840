"""
Token-aware text chunking for embedding.

Splits normalized contract text into overlapping, token-bounded segments
with stable SHA-256 content hashes used as the embedding dedup key.
"""

import hashlib
import re

import structlog
import tiktoken

from contractguard.models.embedding import TextChunk

logger = structlog.get_logger(__name__)

PARAGRAPH_MARK = " ¶ "
_PARAGRAPH_BREAKS = re.compile(r"\n\n+")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+(?=[A-Z\"'])|(?= ¶ )")


def content_hash(text: str) -> str:
    """SHA-256 hex digest of chunk text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def split_into_sentences(text: str) -> list[str]:
    """Split text at sentence ends and paragraph breaks."""
    marked = _PARAGRAPH_BREAKS.sub(PARAGRAPH_MARK, text)
    sentences = []
    for piece in _SENTENCE_BOUNDARY.split(marked):
        sentence = piece.replace(PARAGRAPH_MARK, "\n\n").strip()
        if sentence:
            sentences.append(sentence)
    return sentences


class TextChunker:
    """
    Sentence-accumulating chunker.

    Sentences are accumulated until the next one would exceed the token
    budget; the following chunk then starts with the trailing sentences
    of the previous one that fit in the overlap budget.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        overlap: int = 200,
        encoding: str = "cl100k_base",
    ):
        if overlap >= chunk_size:
            raise ValueError("Chunk overlap must be smaller than the chunk size")
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.encoder = tiktoken.get_encoding(encoding)

    def count_tokens(self, text: str) -> int:
        """Count tokens without chunking."""
        return len(self.encoder.encode(text))

    def chunk(self, text: str) -> list[TextChunk]:
        """Split text into overlapping chunks. Empty text yields no chunks."""
        if not text or not text.strip():
            return []

        pieces = self._bounded_sentences(split_into_sentences(text))
        chunks: list[TextChunk] = []
        current: list[tuple[str, int]] = []
        current_tokens = 0

        for sentence, n_tokens in pieces:
            if current and current_tokens + n_tokens > self.chunk_size:
                self._flush(current, current_tokens, chunks)
                current = self._overlap_tail(current, self.chunk_size - n_tokens)
                current_tokens = sum(n for _, n in current)
            current.append((sentence, n_tokens))
            current_tokens += n_tokens

        if current:
            self._flush(current, current_tokens, chunks)

        logger.debug(
            "text_chunked",
            chunks=len(chunks),
            text_length=len(text),
        )
        return chunks

    # =========================================================================
    # Helpers
    # =========================================================================

    def _bounded_sentences(self, sentences: list[str]) -> list[tuple[str, int]]:
        """Pair sentences with token counts, splitting any that exceed the budget."""
        pieces: list[tuple[str, int]] = []
        for sentence in sentences:
            tokens = self.encoder.encode(sentence)
            if len(tokens) <= self.chunk_size:
                pieces.append((sentence, len(tokens)))
                continue
            for start in range(0, len(tokens), self.chunk_size):
                window = tokens[start:start + self.chunk_size]
                piece = self.encoder.decode(window).strip()
                if piece:
                    pieces.append((piece, len(window)))
        return pieces

    def _overlap_tail(
        self,
        sentences: list[tuple[str, int]],
        room: int,
    ) -> list[tuple[str, int]]:
        """Trailing sentences that fit within the overlap budget and the room left."""
        budget = min(self.overlap, max(room, 0))
        tail: list[tuple[str, int]] = []
        used = 0
        for sentence, n_tokens in reversed(sentences):
            if used + n_tokens > budget:
                break
            tail.insert(0, (sentence, n_tokens))
            used += n_tokens
        return tail

    @staticmethod
    def _flush(
        sentences: list[tuple[str, int]],
        token_count: int,
        chunks: list[TextChunk],
    ) -> None:
        text = " ".join(s for s, _ in sentences).strip()
        if not text:
            return
        chunks.append(
            TextChunk(
                index=len(chunks),
                text=text,
                token_count=token_count,
                content_hash=content_hash(text),
            )
        )
