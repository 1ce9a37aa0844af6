import asyncio
from abc import abstractmethod
from datetime import datetime, timezone
from typing import Any

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import RAGError, StorageError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Chunk, Document, SourceType


class VectorStoreInterface(ClientInterface):
    """Persistent store of documents, their embedded chunks and a small settings record.

    Public methods initialize the backend lazily, wrap backend failures in
    StorageError and log. Engines implement the underscore methods, each of
    which must be atomic.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "vectorstore"

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def initialize(self) -> None:
        """Open the backend and create its schema. Safe to call repeatedly.

        Raises:
            StorageError: If the backend cannot be opened.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            await self._run("initialize", self._do_initialize)
            self._initialized = True
            self.logging.debug("Vector store '%s' initialised.", self.get_engine_name())

    async def boot(self) -> None:
        await self.initialize()

    async def _run(self, operation: str, func, *args) -> Any:
        """Execute a backend operation, translating unexpected failures into StorageError."""
        try:
            return await func(*args)
        except RAGError:
            raise
        except Exception as e:
            self.logging.error("Vector store operation '%s' failed: %s", operation, e)
            raise StorageError(f"Vector store operation '{operation}' failed: {e}") from e

    async def _call(self, operation: str, func, *args) -> Any:
        await self.initialize()
        return await self._run(operation, func, *args)

    ##########################################
    ############### DOCUMENTS ################
    ##########################################

    async def add_document(self, document: Document) -> Document:
        """Insert or replace a document by id.

        created_at is only set if the incoming record has none; an existing
        row keeps its original ingestion time in that case.

        Args:
            document (Document): The document to store.

        Returns:
            Document: The stored record.
        """
        if document.created_at is None:
            existing = await self.get_document(document.id)
            created_at = existing.created_at if existing and existing.created_at else datetime.now(timezone.utc)
            document = document.model_copy(update={"created_at": created_at})
        await self._call("add_document", self._do_add_document, document)
        return document

    async def get_document(self, doc_id: str) -> Document | None:
        return await self._call("get_document", self._do_get_document, doc_id)

    async def get_all_documents(self) -> list[Document]:
        """
        Returns:
            list[Document]: All documents, newest ingestion first.
        """
        documents = await self._call("get_all_documents", self._do_get_all_documents)
        return sorted(
            documents,
            key=lambda d: d.created_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )

    async def get_documents_by_source(self, source_type: SourceType, collection_key: str | None = None) -> list[Document]:
        """
        Returns:
            list[Document]: Documents of the given source type, optionally restricted to one collection.
        """
        documents = await self.get_all_documents()
        return [
            d for d in documents
            if d.source_type == source_type and (collection_key is None or d.collection_key == collection_key)
        ]

    async def delete_document(self, doc_id: str) -> None:
        """Delete a document and all of its chunks. Unknown ids are ignored."""
        await self._call("delete_document", self._do_delete_document, doc_id)
        self.logging.debug("Deleted document %s and its chunks.", doc_id)

    async def get_document_count(self) -> int:
        return await self._call("get_document_count", self._do_get_document_count)

    ##########################################
    ################# CHUNKS #################
    ##########################################

    async def add_chunks(self, chunks: list[Chunk]) -> None:
        """Insert or replace a batch of chunks. All chunks are written or none is."""
        if not chunks:
            return
        await self._call("add_chunks", self._do_add_chunks, chunks)

    async def get_all_chunks(self) -> list[Chunk]:
        return await self._call("get_all_chunks", self._do_get_all_chunks)

    async def get_chunks_by_doc_id(self, doc_id: str) -> list[Chunk]:
        """
        Returns:
            list[Chunk]: The chunks of one document ordered by position.
        """
        chunks = await self._call("get_chunks_by_doc_id", self._do_get_chunks_by_doc_id, doc_id)
        return sorted(chunks, key=lambda c: c.position)

    async def get_chunk_count(self) -> int:
        return await self._call("get_chunk_count", self._do_get_chunk_count)

    async def clear_all(self) -> None:
        """Delete every document and chunk. Settings are kept."""
        await self._call("clear_all", self._do_clear_all)
        self.logging.info("Knowledge base cleared (%s).", self.get_engine_name())

    ##########################################
    ################ SETTINGS ################
    ##########################################

    async def get_setting(self, key: str, default: Any = None) -> Any:
        value = await self._call("get_setting", self._do_get_setting, key)
        return default if value is None else value

    async def set_setting(self, key: str, value: Any) -> None:
        await self._call("set_setting", self._do_set_setting, key, value)

    ##########################################
    ############ ENGINE OPERATIONS ###########
    ##########################################

    @abstractmethod
    async def _do_initialize(self) -> None:
        pass

    @abstractmethod
    async def _do_add_document(self, document: Document) -> None:
        pass

    @abstractmethod
    async def _do_get_document(self, doc_id: str) -> Document | None:
        pass

    @abstractmethod
    async def _do_get_all_documents(self) -> list[Document]:
        pass

    @abstractmethod
    async def _do_delete_document(self, doc_id: str) -> None:
        """Remove the chunks of the document, then the document, in one transaction."""
        pass

    @abstractmethod
    async def _do_get_document_count(self) -> int:
        pass

    @abstractmethod
    async def _do_add_chunks(self, chunks: list[Chunk]) -> None:
        pass

    @abstractmethod
    async def _do_get_all_chunks(self) -> list[Chunk]:
        pass

    @abstractmethod
    async def _do_get_chunks_by_doc_id(self, doc_id: str) -> list[Chunk]:
        pass

    @abstractmethod
    async def _do_get_chunk_count(self) -> int:
        pass

    @abstractmethod
    async def _do_clear_all(self) -> None:
        pass

    @abstractmethod
    async def _do_get_setting(self, key: str) -> Any:
        pass

    @abstractmethod
    async def _do_set_setting(self, key: str, value: Any) -> None:
        pass
