"""In-process vector store. Contents are lost when the process exits."""

from typing import Any

from shared.clients.vectorstore.VectorStoreInterface import VectorStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import Chunk, Document


class VectorStoreMemory(VectorStoreInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, Chunk] = {}
        self._settings: dict[str, Any] = {}

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    async def _do_initialize(self) -> None:
        pass

    async def _do_add_document(self, document: Document) -> None:
        self._documents[document.id] = document.model_copy(deep=True)

    async def _do_get_document(self, doc_id: str) -> Document | None:
        document = self._documents.get(doc_id)
        return document.model_copy(deep=True) if document else None

    async def _do_get_all_documents(self) -> list[Document]:
        return [d.model_copy(deep=True) for d in self._documents.values()]

    async def _do_delete_document(self, doc_id: str) -> None:
        self._chunks = {cid: c for cid, c in self._chunks.items() if c.doc_id != doc_id}
        self._documents.pop(doc_id, None)

    async def _do_get_document_count(self) -> int:
        return len(self._documents)

    async def _do_add_chunks(self, chunks: list[Chunk]) -> None:
        # build the new state first so a bad item leaves the store untouched
        staged = dict(self._chunks)
        for chunk in chunks:
            staged[chunk.id] = chunk.model_copy(deep=True)
        self._chunks = staged

    async def _do_get_all_chunks(self) -> list[Chunk]:
        return [c.model_copy(deep=True) for c in self._chunks.values()]

    async def _do_get_chunks_by_doc_id(self, doc_id: str) -> list[Chunk]:
        return [c.model_copy(deep=True) for c in self._chunks.values() if c.doc_id == doc_id]

    async def _do_get_chunk_count(self) -> int:
        return len(self._chunks)

    async def _do_clear_all(self) -> None:
        self._documents = {}
        self._chunks = {}

    async def _do_get_setting(self, key: str) -> Any:
        return self._settings.get(key)

    async def _do_set_setting(self, key: str, value: Any) -> None:
        self._settings[key] = value
