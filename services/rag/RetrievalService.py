"""Retrieval service.

Owns the ingestion pipeline (chunk, embed, store), retrieval (embed query,
rank, de-duplicate, format) and prompt augmentation, plus the incremental
sync of remote wiki pages into the knowledge base. It is the only writer of
the vector store.
"""

import asyncio
import json
import re
import uuid
from typing import Any, AsyncIterator, Callable

from services.rag import SimilaritySearch
from services.rag.DocumentChunker import ChunkSourceInterface
from services.rag.PageSelectionTree import PageSelectionTree
from services.rag.SyncClassifier import build_stored_page_map, classify_pages
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.vectorstore.VectorStoreInterface import VectorStoreInterface
from shared.clients.wiki.WikiClientInterface import WikiClientInterface
from shared.exceptions import BackendUnavailable, InvalidInput, RAGError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import AddDocumentResult, Chunk, Document, SourceType, UploadedFile
from shared.models.search import AugmentResult, KnowledgeBaseStats, SearchDetails, SearchResult, SourceReference
from shared.models.sync import (
    FailedPage,
    MissingTimestampPolicy,
    PageAction,
    ProgressEvent,
    SyncReport,
    WikiPage,
)

ProgressCallback = Callable[[ProgressEvent], None]

SETTING_ENABLED = "rag_enabled"

DEFAULT_CONTEXT_PREFIX = "\n\n---\nThe following information comes from the related knowledge base:\n\n"
DEFAULT_CONTEXT_SUFFIX = "\n---\n\nPlease use the information above when answering."

_UPLOAD_TAG = "[Document: {name}]"
_WIKI_TAG = "[Wiki: {name}]"
_TAG_PATTERN = re.compile(r"^\[(?:Document|Wiki):\s*(.+?)\]")


def _emit(on_progress: ProgressCallback | None, stage: str, current: int = 0, total: int = 0, **kwargs: Any) -> None:
    if on_progress:
        on_progress(ProgressEvent(stage=stage, current=current, total=total, **kwargs))


class RetrievalService:
    def __init__(
        self,
        helper_config: HelperConfig,
        vector_store: VectorStoreInterface,
        embed_provider: EmbedClientManager,
        chunk_source: ChunkSourceInterface,
        wiki_client: WikiClientInterface | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = vector_store
        self._embed = embed_provider
        self._chunker = chunk_source
        self._wiki_client = wiki_client

        self.top_k = int(helper_config.get_number_val("RAG_TOP_K", default=SimilaritySearch.DEFAULT_TOP_K))
        self.similarity_threshold = float(helper_config.get_number_val("RAG_SIMILARITY_THRESHOLD", default=SimilaritySearch.DEFAULT_THRESHOLD))
        self.dup_threshold = float(helper_config.get_number_val("RAG_DEDUP_THRESHOLD", default=SimilaritySearch.DEFAULT_DUP_THRESHOLD))
        self.max_context_length = int(helper_config.get_number_val("RAG_MAX_CONTEXT_LENGTH", default=SimilaritySearch.DEFAULT_MAX_CONTEXT_LENGTH))
        # surrounding newlines are written as "\n" escapes in the environment
        self.context_prefix = helper_config.get_string_val("RAG_CONTEXT_PREFIX", default=DEFAULT_CONTEXT_PREFIX).replace("\\n", "\n")
        self.context_suffix = helper_config.get_string_val("RAG_CONTEXT_SUFFIX", default=DEFAULT_CONTEXT_SUFFIX).replace("\\n", "\n")
        self.missing_timestamp_policy = MissingTimestampPolicy(
            helper_config.get_choice_val("RAG_MISSING_TIMESTAMP_POLICY", choices=[p.value for p in MissingTimestampPolicy], default=MissingTimestampPolicy.SKIP.value)
        )
        self._enabled_default = helper_config.get_bool_val("RAG_ENABLED_DEFAULT", default=False)

        self._enabled = self._enabled_default
        self._initialized = False
        self._init_lock = asyncio.Lock()

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def initialize(self) -> None:
        """Prepare store and embedding backend and restore the enabled flag. Safe to call repeatedly."""
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            await self._store.initialize()
            await self._embed.boot()
            self._enabled = bool(await self._store.get_setting(SETTING_ENABLED, self._enabled_default))
            self._initialized = True
            self.logging.info("Retrieval service ready (enabled=%s).", self._enabled)

    def is_enabled(self) -> bool:
        return self._enabled

    async def set_enabled(self, enabled: bool) -> None:
        await self.initialize()
        self._enabled = bool(enabled)
        await self._store.set_setting(SETTING_ENABLED, self._enabled)
        self.logging.info("Knowledge base augmentation %s.", "enabled" if self._enabled else "disabled")

    def is_embedding_available(self) -> bool:
        return self._embed.is_available()

    def has_wiki_source(self) -> bool:
        return self._wiki_client is not None

    def _require_wiki(self) -> WikiClientInterface:
        if self._wiki_client is None:
            raise BackendUnavailable("No wiki source is configured.")
        return self._wiki_client

    ##########################################
    ############### INGESTION ################
    ##########################################

    @staticmethod
    def _new_document_id() -> str:
        return f"doc_{uuid.uuid4().hex}"

    async def add_document(self, file: UploadedFile, on_progress: ProgressCallback | None = None) -> AddDocumentResult:
        """Ingest an uploaded file.

        Args:
            file (UploadedFile): The file to ingest.
            on_progress (ProgressCallback | None): Receives "chunking", "embedding", "saving" and "complete" events.

        Returns:
            AddDocumentResult: Id and chunk count of the new document.

        Raises:
            InvalidInput: If the file yields no text chunks.
            UpstreamError, BackendUnavailable, StorageError: If embedding or storing fails. Nothing is left behind.
        """
        await self.initialize()

        _emit(on_progress, "chunking", 0, 1, message=file.name)
        chunked = self._chunker.chunk_document(file)
        if not chunked.chunks:
            raise InvalidInput(f"No text chunks could be extracted from '{file.name}'.")
        _emit(on_progress, "chunking", 1, 1, message=file.name)

        document = Document(
            id=self._new_document_id(),
            name=file.name,
            source_type=SourceType.UPLOAD,
            size_bytes=file.size_bytes,
            mime_type=file.mime_type,
        )
        chunk_count = await self._store_document(document, chunked.chunks, _UPLOAD_TAG.format(name=file.name), on_progress)
        _emit(on_progress, "complete", chunk_count, chunk_count, message=file.name)
        self.logging.info("Added document '%s' (%s) with %d chunks.", file.name, document.id, chunk_count, color="green")
        return AddDocumentResult(doc_id=document.id, name=file.name, chunk_count=chunk_count)

    async def _store_document(
        self,
        document: Document,
        chunk_texts: list[str],
        tag: str,
        on_progress: ProgressCallback | None = None,
    ) -> int:
        """Embed the tagged chunks, then write the document and its chunks.

        On any failure the partially written document is removed before the
        error is re-raised.

        Returns:
            int: The number of chunks written.
        """
        tagged = [f"{tag}\n{text}" for text in chunk_texts]
        try:
            vectors = await self._embed.embed_batch(tagged, on_progress=on_progress)
            _emit(on_progress, "saving", 0, len(tagged), message=document.name)
            document = document.model_copy(update={"chunk_count": len(tagged)})
            await self._store.add_document(document)
            chunks = [
                Chunk(id=f"{document.id}_{i}", doc_id=document.id, text=text, embedding=vector, position=i)
                for i, (text, vector) in enumerate(zip(tagged, vectors))
            ]
            await self._store.add_chunks(chunks)
            _emit(on_progress, "saving", len(tagged), len(tagged), message=document.name)
        except Exception:
            await self._discard_document(document.id)
            raise
        return len(tagged)

    async def _discard_document(self, doc_id: str) -> None:
        try:
            await self._store.delete_document(doc_id)
        except RAGError as e:
            self.logging.error("Cleanup of partially written document %s failed: %s", doc_id, e)

    async def remove_document(self, doc_id: str) -> None:
        """Delete a document and its chunks. Unknown ids are ignored."""
        await self.initialize()
        await self._store.delete_document(doc_id)
        self.logging.info("Removed document %s.", doc_id)

    async def get_documents(self) -> list[Document]:
        await self.initialize()
        return await self._store.get_all_documents()

    async def clear_all(self) -> None:
        await self.initialize()
        await self._store.clear_all()

    async def get_stats(self) -> KnowledgeBaseStats:
        await self.initialize()
        documents = await self._store.get_all_documents()
        return KnowledgeBaseStats(
            document_count=len(documents),
            chunk_count=await self._store.get_chunk_count(),
            total_size_bytes=sum(d.size_bytes for d in documents),
            embedding_backend=self._embed.get_backend_name(),
            embedding_model=self._embed.get_model_name(),
            embedding_dimension=self._embed.get_dimension(),
            enabled=self._enabled,
        )

    ##########################################
    ############### RETRIEVAL ################
    ##########################################

    async def _retrieve(self, query: str) -> list[SearchResult]:
        query_vector = await self._embed.embed(query)
        results = await SimilaritySearch.search_store(self._store, query_vector, top_k=self.top_k, threshold=self.similarity_threshold)
        results = SimilaritySearch.deduplicate_results(results, dup_threshold=self.dup_threshold)
        stats = SimilaritySearch.get_search_stats(results)
        self.logging.debug("Retrieved %d chunks (avg similarity %.3f) for query %r", stats.count, stats.avg_similarity, query[:80])
        return results

    async def search(self, query: str) -> str:
        """Return the formatted context for a query, or "" if nothing relevant is stored."""
        await self.initialize()
        if not query or not query.strip():
            return ""
        results = await self._retrieve(query)
        return SimilaritySearch.format_results_as_context(results, max_length=self.max_context_length)

    async def search_with_details(self, query: str) -> SearchDetails:
        """Like search(), plus one source entry per contributing document, best match first."""
        await self.initialize()
        if not query or not query.strip():
            return SearchDetails()
        results = await self._retrieve(query)
        context = SimilaritySearch.format_results_as_context(results, max_length=self.max_context_length)

        documents = {d.id: d for d in await self._store.get_all_documents()}
        best: dict[str, SourceReference] = {}
        for result in results:
            similarity = round(result.similarity * 100)
            doc_id = result.chunk.doc_id
            if doc_id in best and best[doc_id].similarity >= similarity:
                continue
            document = documents.get(doc_id)
            best[doc_id] = SourceReference(
                doc_id=doc_id,
                doc_name=document.name if document else self._extract_doc_name(result.chunk.text),
                similarity=similarity,
                source_url=document.source_url if document else None,
            )
        sources = sorted(best.values(), key=lambda s: s.similarity, reverse=True)
        self.logging.info("Search found %d chunks from %d documents.", len(results), len(sources))
        return SearchDetails(context=context, sources=sources)

    @staticmethod
    def _extract_doc_name(chunk_text: str) -> str:
        match = _TAG_PATTERN.match(chunk_text or "")
        return match.group(1).strip() if match else "Unknown document"

    ##########################################
    ############# AUGMENTATION ###############
    ##########################################

    @staticmethod
    def _last_user_query(messages: list[dict[str, Any]]) -> str | None:
        for message in reversed(messages):
            if message.get("role") == "user":
                content = message.get("content")
                if content is None:
                    return None
                return content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)
        return None

    async def augment_prompt(
        self,
        messages: list[dict[str, Any]],
        query: str | None = None,
        return_sources: bool = False,
    ) -> list[dict[str, Any]] | AugmentResult:
        """Splice retrieved context into the system message of a chat prompt.

        The input list is never modified. It is returned as is when augmentation
        is disabled, the knowledge base is empty, no query can be derived or
        nothing relevant is found.

        Args:
            messages: Chat messages with "role" and "content".
            query: Search query; defaults to the content of the last user message.
            return_sources: Return an AugmentResult with the contributing documents.

        Returns:
            The (possibly) augmented messages, or an AugmentResult if return_sources is set.

        Raises:
            UpstreamError: If the embedding backend fails.
            StorageError: If the knowledge base cannot be read.
        """
        await self.initialize()

        def _unchanged():
            return AugmentResult(messages=messages, sources=[]) if return_sources else messages

        if not self._enabled:
            return _unchanged()
        if await self._store.get_document_count() == 0:
            return _unchanged()

        query = query or self._last_user_query(messages)
        if not query or not query.strip():
            return _unchanged()

        details = await self.search_with_details(query)
        if not details.context:
            return _unchanged()

        block = self.context_prefix + details.context + self.context_suffix
        augmented = list(messages)
        system_index = next((i for i, m in enumerate(augmented) if m.get("role") == "system"), None)
        if system_index is not None:
            system_message = augmented[system_index]
            augmented[system_index] = {**system_message, "content": f"{system_message.get('content') or ''}{block}"}
        else:
            augmented.insert(0, {"role": "system", "content": block})

        self.logging.debug("Prompt augmented with %d characters of context.", len(details.context))
        if return_sources:
            return AugmentResult(messages=augmented, sources=details.sources)
        return augmented

    ##########################################
    ################# SYNC ###################
    ##########################################

    async def sync_collection(
        self,
        collection_key: str,
        pages: list[WikiPage],
        collection_name: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncReport:
        """Bring the local copies of a collection's pages up to date.

        Pages are classified as new, updated, unchanged or empty against the
        stored wiki documents. New and updated pages are re-ingested one by
        one; a failing page is recorded and does not stop the run.

        Args:
            collection_key: Key of the remote collection.
            pages: Candidate pages with content.
            collection_name: Display name of the collection.
            on_progress: Receives "analyzed", "syncing" and "complete" events.

        Returns:
            SyncReport: Counts of the run; new and updated counts only include successes.
        """
        await self.initialize()
        collection_name = collection_name or collection_key

        stored = build_stored_page_map(await self._store.get_documents_by_source(SourceType.WIKI_PAGE))
        plan = classify_pages(pages, stored, policy=self.missing_timestamp_policy)
        tally = {
            "new": plan.new_count,
            "update": plan.update_count,
            "skip": plan.skip_count,
            "empty": plan.empty_count,
        }
        self.logging.info(
            "Sync of %s analysed: %d new, %d updated, %d unchanged, %d empty.",
            collection_key, plan.new_count, plan.update_count, plan.skip_count, plan.empty_count,
        )
        to_process = plan.to_process
        _emit(on_progress, "analyzed", 0, len(to_process), plan=tally)

        report = SyncReport(collection_key=collection_key, skip_count=plan.skip_count, empty_count=plan.empty_count)
        for i, planned in enumerate(to_process):
            page = planned.page
            _emit(on_progress, "syncing", i + 1, len(to_process), message=page.title)
            try:
                if planned.action == PageAction.UPDATE and planned.existing_doc_id:
                    await self._store.delete_document(planned.existing_doc_id)

                chunk_texts = self._chunker.chunk_text(page.content)
                if not chunk_texts:
                    self.logging.info("Page '%s' produced no chunks.", page.title)
                    report.empty_count += 1
                    continue

                document = Document(
                    id=self._new_document_id(),
                    name=page.title,
                    source_type=SourceType.WIKI_PAGE,
                    size_bytes=len(page.content.encode("utf-8")),
                    source_url=page.url,
                    external_page_id=page.id,
                    last_modified=page.last_modified,
                    collection_key=collection_key,
                    collection_name=collection_name,
                )
                report.chunk_count += await self._store_document(document, chunk_texts, _WIKI_TAG.format(name=page.title))
                report.page_count += 1
                if planned.action == PageAction.UPDATE:
                    report.update_count += 1
                else:
                    report.new_count += 1
            except Exception as e:
                self.logging.error("Sync of page '%s' (%s) failed: %s", page.title, page.id, e)
                report.failed_pages.append(FailedPage(page_id=page.id, title=page.title, error=str(e)))

        self.logging.info(
            "Sync of %s finished: %d pages, %d chunks, %d failed.",
            collection_key, report.page_count, report.chunk_count, len(report.failed_pages),
            color="green" if not report.failed_pages else "yellow",
        )
        _emit(on_progress, "complete", len(to_process), len(to_process), report=report)
        return report

    async def stream_sync_collection(
        self,
        collection_key: str,
        pages: list[WikiPage],
        collection_name: str | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """sync_collection() as an async stream of progress events.

        The last event has stage "complete" and carries the report. Errors of
        the run are raised from the iterator.
        """
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        task = asyncio.create_task(self.sync_collection(collection_key, pages, collection_name, on_progress=queue.put_nowait))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()

    async def sync_selected_pages(self, tree: PageSelectionTree, on_progress: ProgressCallback | None = None) -> SyncReport:
        """Fetch the selected pages of a tree and sync them into the tree's collection.

        Raises:
            InvalidInput: If no collection is loaded or nothing is selected.
        """
        collection_key = tree.get_current_collection_key()
        if collection_key is None:
            raise InvalidInput("No collection loaded in the page tree.")
        if tree.get_selected_count() == 0:
            raise InvalidInput("No pages selected.")
        pages = await tree.get_selected_pages_with_content(on_progress=on_progress)
        return await self.sync_collection(collection_key, pages, tree.get_current_collection_name(), on_progress=on_progress)

    async def sync_space(
        self,
        collection_key: str,
        collection_name: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncReport:
        """Fetch every page of a space and sync them.

        Raises:
            BackendUnavailable: If no wiki source is configured.
            InvalidInput: If the space has no pages.
        """
        wiki = self._require_wiki()
        pages = await wiki.do_fetch_space_pages(collection_key, on_progress=on_progress)
        if not pages:
            raise InvalidInput(f"No pages found in space '{collection_key}'.")
        return await self.sync_collection(collection_key, pages, collection_name, on_progress=on_progress)
