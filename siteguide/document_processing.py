"""Page text extraction and overlapping text chunking."""

import hashlib
import io
import re

import pypdf
from bs4 import BeautifulSoup

from .config import config
from .models import DocumentChunk

logger = config.get_logger(__name__)

_WHITESPACE_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")
_NON_CONTENT_TAGS = ("script", "style", "noscript", "template", "svg", "iframe")


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Suffix-cut text so its UTF-8 encoding is at most ``max_bytes`` long.

    A multibyte character split by the cut is dropped rather than kept partial.

    Returns:
        The (possibly) shortened text.
    """
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def chunk_id_for(source_url: str, start_char: int) -> str:
    """Content-derived chunk id, stable across re-crawls of the same page.

    Returns:
        Hex digest of the source URL and chunk offset.
    """
    digest = hashlib.sha256(f"{source_url}#{start_char}".encode()).hexdigest()
    return f"doc-{digest[:32]}"


class DocumentLoader:
    """Extracts readable text from fetched HTML and PDF payloads."""

    @staticmethod
    def load_html(markup: str) -> str:
        """Extract visible text from an HTML page.

        Returns:
            Whitespace-normalized page text.
        """
        soup = BeautifulSoup(markup, "html.parser")
        for tag in soup(_NON_CONTENT_TAGS):
            tag.decompose()
        text = soup.get_text(separator="\n")
        text = _WHITESPACE_RE.sub(" ", text)
        return _BLANK_LINES_RE.sub("\n\n", text).strip()

    @staticmethod
    def load_pdf(payload: bytes) -> str:
        """Load text content from PDF bytes.

        Returns:
            The extracted text content from the PDF as a string.
        """
        try:
            pdf_reader = pypdf.PdfReader(io.BytesIO(payload))
            text = ""
            for page_num, page in enumerate(pdf_reader.pages):
                page_text = page.extract_text() or ""
                text += f"\n--- Page {page_num + 1} ---\n{page_text}\n"
        except Exception:
            logger.exception("Error loading PDF payload")
            raise
        else:
            return text.strip()

    @classmethod
    def load_document(
        cls, payload: bytes, content_type: str, text: str | None = None
    ) -> str:
        """Load text based on the response content type.

        Args:
            payload: Raw response body.
            content_type: Value of the Content-Type header.
            text: Body already decoded with the response charset. Used for
                HTML and plain text; if None, the payload is read as UTF-8.

        Returns:
            The text content of the document as a string.

        Raises:
            ValueError: If the content type is not supported.
        """
        media_type = content_type.split(";")[0].strip().lower()
        if media_type == "application/pdf":
            return cls.load_pdf(payload)
        if text is None:
            text = payload.decode("utf-8", errors="replace")
        if media_type in {"text/html", "application/xhtml+xml"}:
            return cls.load_html(text)
        if media_type == "text/plain":
            return text.strip()
        msg = f"Unsupported content type: {media_type or '(none)'}"
        raise ValueError(msg)


class TextChunker:
    """Handles text chunking with fixed length and overlap strategy."""

    def __init__(
        self,
        chunk_size: int = 800,
        overlap: int = 120,
        max_text_bytes: int | None = None,
    ) -> None:
        """Initialize the TextChunker with chunk size and overlap.

        Args:
            chunk_size: The size of each text chunk, in characters.
            overlap: The number of overlapping characters between chunks.
            max_text_bytes: Hard cap on the stored text of a chunk, in UTF-8 bytes.

        Raises:
            ValueError: If overlap is not smaller than chunk_size.
        """
        if overlap >= chunk_size:
            msg = "overlap must be smaller than chunk_size"
            raise ValueError(msg)
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.max_text_bytes = (
            config.CHUNK_TEXT_MAX_BYTES if max_text_bytes is None else max_text_bytes
        )

    def chunk_text(self, text: str, source_url: str) -> list[DocumentChunk]:
        """Split text into overlapping chunks.

        Returns:
            A list of DocumentChunk objects representing the text chunks.
        """
        chunks = []
        start = 0

        while start < len(text):
            end = start + self.chunk_size
            chunk_text = text[start:end]

            # Ensure we don't break in the middle of a word (except for last chunk)
            if end < len(text) and not chunk_text.endswith(" "):
                last_space = chunk_text.rfind(" ")
                # At least half chunk size to prevent too small chunks after adjustment
                if last_space > self.chunk_size // 2:
                    end = start + last_space
                    chunk_text = text[start:end]

            content = chunk_text.strip()
            if content:  # Only add non-empty chunks
                chunks.append(
                    DocumentChunk(
                        id=chunk_id_for(source_url, start),
                        source_url=source_url,
                        text=truncate_utf8(content, self.max_text_bytes),
                        metadata={
                            "chunk_index": len(chunks),
                            "start_char": start,
                            "end_char": end,
                        },
                    )
                )

            if end >= len(text):
                break
            start = max(end - self.overlap, start + 1)

        logger.debug("Text from %s split into %d chunks", source_url, len(chunks))
        return chunks

    def chunk_pages(self, pages: list[tuple[str, str]]) -> list[DocumentChunk]:
        """Chunk several ``(url, text)`` pages in order.

        Returns:
            All chunks, page by page.
        """
        chunks: list[DocumentChunk] = []
        for url, text in pages:
            chunks.extend(self.chunk_text(text, source_url=url))
        logger.info("Split %d pages into %d chunks", len(pages), len(chunks))
        return chunks
