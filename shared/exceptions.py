"""Typed error taxonomy shared by all RAG components."""


class RAGError(Exception):
    """Base class for all knowledge base errors."""


class InvalidInput(RAGError):
    """Raised for empty text, unsupported files or malformed arguments."""


class NotFound(RAGError):
    """Raised when a referenced document, node or collection does not exist."""


class BackendUnavailable(RAGError):
    """Raised when an embedding backend or content source cannot be used at all."""


class InitializationTimeout(RAGError):
    """Raised when a lazily loaded backend does not become ready in time."""


class StorageError(RAGError):
    """Raised when the vector store fails to read or write."""


class UpstreamError(RAGError):
    """Raised for non-2xx responses, transport failures and timeouts of remote services."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status {self.status_code})"
        return self.message
