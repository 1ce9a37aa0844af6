"""Text extraction and chunking of uploaded files.

Text is packed paragraph by paragraph into chunks of roughly RAG_CHUNK_SIZE
characters, carrying a short overlap into the next chunk. Paragraphs that do
not fit are split into sentences, and sentences that are still far too long
are cut at the last space of the window.
"""

import os
import re
from abc import ABC, abstractmethod

from bs4 import BeautifulSoup

from shared.exceptions import InvalidInput
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ChunkedDocument, UploadedFile

_TEXT_EXTENSIONS = {
    ".txt", ".md", ".markdown", ".rst", ".csv", ".tsv", ".json", ".xml", ".yaml", ".yml",
    ".log", ".ini", ".cfg", ".toml", ".sql", ".sh", ".py", ".js", ".ts", ".java", ".c",
    ".cpp", ".h", ".go", ".rs", ".rb", ".php", ".css",
}
_HTML_EXTENSIONS = {".html", ".htm"}
_TEXT_MIME_TYPES = {
    "application/json", "application/xml", "application/javascript", "application/x-yaml",
    "application/yaml", "application/sql", "application/x-sh",
}

_HEADER_PATTERNS = (
    re.compile(r"^===.*===\s*\n+", re.MULTILINE),
    re.compile(r"^--- Page \d+ ---\s*\n+", re.MULTILINE),
)
_SENTENCE_ENDINGS = re.compile(r"([。．！？.!?]+\s*)")
_OVERLAP_BREAK = re.compile(r"[。．.!?！？\s]")
_JP_BREAK = re.compile(r"[、。，．]")


class ChunkSourceInterface(ABC):
    """Turns a file into plain text and an ordered list of chunks."""

    @abstractmethod
    def chunk_document(self, file: UploadedFile) -> ChunkedDocument:
        """
        Extracts the text of a file and splits it into chunks.

        Raises:
            InvalidInput: If no text can be extracted from the file.
        """
        pass

    @abstractmethod
    def chunk_text(self, text: str, chunk_size: int | None = None, overlap: int | None = None) -> list[str]:
        """
        Splits plain text into ordered chunks.
        """
        pass


class DocumentChunker(ChunkSourceInterface):
    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self.chunk_size = int(helper_config.get_number_val("RAG_CHUNK_SIZE", default=500))
        self.chunk_overlap = int(helper_config.get_number_val("RAG_CHUNK_OVERLAP", default=50))
        self.min_chunk_length = int(helper_config.get_number_val("RAG_CHUNK_MIN_LENGTH", default=20))

    ##########################################
    ############### EXTRACTION ###############
    ##########################################

    def chunk_document(self, file: UploadedFile) -> ChunkedDocument:
        text = self.extract_text(file)
        text = self._remove_headers(text)
        chunks = self.chunk_text(text)
        self.logging.debug("Chunked '%s' into %d chunks.", file.name, len(chunks))
        return ChunkedDocument(text=text, chunks=chunks)

    def extract_text(self, file: UploadedFile) -> str:
        """
        Decodes text-like files. HTML is reduced to its visible text.

        Args:
            file (UploadedFile): The uploaded file.

        Returns:
            str: The extracted text.

        Raises:
            InvalidInput: If the file type carries no extractable text.
        """
        extension = os.path.splitext(file.name)[1].lower()
        mime_type = (file.mime_type or "").split(";")[0].strip().lower()

        if extension in _HTML_EXTENSIONS or mime_type == "text/html":
            soup = BeautifulSoup(self._decode(file.content), "html.parser")
            for element in soup(["script", "style"]):
                element.decompose()
            return soup.get_text("\n")
        if extension in _TEXT_EXTENSIONS or mime_type.startswith("text/") or mime_type in _TEXT_MIME_TYPES:
            return self._decode(file.content)
        raise InvalidInput(
            f"Cannot extract text from '{file.name}' ({mime_type or 'unknown type'}). Only text based files are supported."
        )

    @staticmethod
    def _decode(content: bytes) -> str:
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError:
            return content.decode("utf-8", errors="replace")

    @staticmethod
    def _remove_headers(text: str) -> str:
        for pattern in _HEADER_PATTERNS:
            text = pattern.sub("", text)
        return text.strip()

    ##########################################
    ################ CHUNKING ################
    ##########################################

    def chunk_text(self, text: str, chunk_size: int | None = None, overlap: int | None = None) -> list[str]:
        size = self.chunk_size if chunk_size is None else chunk_size
        overlap_size = self.chunk_overlap if overlap is None else overlap
        if size <= 0 or overlap_size < 0:
            raise InvalidInput(f"Invalid chunking parameters: size {size}, overlap {overlap_size}")

        if not text or not text.strip():
            return []

        paragraphs = self._split_paragraphs(self._normalize(text))

        chunks: list[str] = []
        current = ""
        for paragraph in paragraphs:
            if len(paragraph) > size:
                if current.strip():
                    chunks.append(current.strip())
                    current = ""
                chunks.extend(self._split_sentences(paragraph, size, overlap_size))
            elif len(current) + len(paragraph) + 1 > size:
                if current.strip():
                    chunks.append(current.strip())
                current = self._overlap_text(current, overlap_size) + paragraph
            else:
                current += ("\n\n" if current else "") + paragraph

        if current.strip():
            chunks.append(current.strip())

        return [chunk for chunk in chunks if len(chunk) >= self.min_chunk_length]

    @staticmethod
    def _normalize(text: str) -> str:
        text = re.sub(r"\n{3,}", "\n\n", text)
        text = text.replace("\t", "    ")
        text = re.sub(r"[ \t]+$", "", text, flags=re.MULTILINE)
        return text.strip()

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        return [p.strip() for p in re.split(r"\n\n+", text) if p.strip()]

    def _split_sentences(self, text: str, max_size: int, overlap: int) -> list[str]:
        parts = [p for p in _SENTENCE_ENDINGS.split(text) if p.strip()]

        # glue sentence endings back onto their sentence
        sentences: list[str] = []
        for part in parts:
            if _SENTENCE_ENDINGS.fullmatch(part):
                if sentences:
                    sentences[-1] += part
            else:
                sentences.append(part)

        chunks: list[str] = []
        current = ""
        for sentence in sentences:
            if len(current) + len(sentence) > max_size:
                if current.strip():
                    chunks.append(current.strip())
                current = self._overlap_text(current, overlap) + sentence
            else:
                current += sentence
        if current.strip():
            chunks.append(current.strip())

        result: list[str] = []
        for chunk in chunks:
            if len(chunk) > max_size * 1.5:
                result.extend(self._force_split(chunk, max_size, overlap))
            else:
                result.append(chunk)
        return result

    @staticmethod
    def _force_split(text: str, max_size: int, overlap: int) -> list[str]:
        chunks: list[str] = []
        start = 0
        while start < len(text):
            end = start + max_size
            if end < len(text):
                window = text[start:end]
                break_point = window.rfind(" ")
                jp_match = _JP_BREAK.search(window)
                if break_point > max_size * 0.7:
                    end = start + break_point
                elif jp_match and jp_match.start() > max_size * 0.7:
                    end = start + jp_match.start() + 1
            chunks.append(text[start:end].strip())
            if end >= len(text):
                break
            start = max(end - overlap, start + 1)
        return chunks

    @staticmethod
    def _overlap_text(text: str, overlap_size: int) -> str:
        if overlap_size <= 0 or not text or len(text) <= overlap_size:
            return ""
        tail = text[len(text) - overlap_size:]
        # start the overlap at a word or sentence boundary if one is close
        first_break = _OVERLAP_BREAK.search(tail)
        if first_break and 0 < first_break.start() < overlap_size * 0.5:
            return tail[first_break.start() + 1:].strip() + " "
        return tail.strip() + " "
