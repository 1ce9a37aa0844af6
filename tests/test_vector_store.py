from datetime import datetime, timezone

import pytest

from shared.clients.vectorstore.VectorStoreManager import VectorStoreManager
from shared.clients.vectorstore.memory.VectorStoreMemory import VectorStoreMemory
from shared.clients.vectorstore.sqlite.VectorStoreSqlite import VectorStoreSqlite
from shared.exceptions import StorageError
from shared.models.document import Chunk, Document, SourceType


@pytest.fixture(params=["memory", "sqlite"])
def store(request, helper_config, monkeypatch, tmp_path):
    if request.param == "sqlite":
        monkeypatch.setenv("VECTORSTORE_SQLITE_PATH", str(tmp_path / "kb" / "store.db"))
        return VectorStoreSqlite(helper_config=helper_config)
    return VectorStoreMemory(helper_config=helper_config)


def _document(doc_id: str, **kwargs) -> Document:
    return Document(id=doc_id, name=f"{doc_id}.txt", size_bytes=10, **kwargs)


def _chunks(doc_id: str, count: int) -> list[Chunk]:
    return [
        Chunk(id=f"{doc_id}_{i}", doc_id=doc_id, text=f"chunk {i} of {doc_id}", embedding=[float(i), 1.0], position=i)
        for i in range(count)
    ]


async def test_add_and_get_document_sets_created_at(store):
    stored = await store.add_document(_document("doc_a"))

    assert stored.created_at is not None
    fetched = await store.get_document("doc_a")
    assert fetched is not None
    assert fetched.name == "doc_a.txt"
    assert fetched.created_at == stored.created_at
    assert await store.get_document("missing") is None


async def test_replacing_a_document_keeps_created_at(store):
    first = await store.add_document(_document("doc_a"))
    await store.add_document(_document("doc_a", chunk_count=3))

    fetched = await store.get_document("doc_a")
    assert fetched.chunk_count == 3
    assert fetched.created_at == first.created_at
    assert await store.get_document_count() == 1


async def test_get_all_documents_newest_first(store):
    await store.add_document(_document("old", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)))
    await store.add_document(_document("new", created_at=datetime(2025, 1, 1, tzinfo=timezone.utc)))

    documents = await store.get_all_documents()
    assert [d.id for d in documents] == ["new", "old"]


async def test_get_documents_by_source(store):
    await store.add_document(_document("upload"))
    await store.add_document(_document("wiki_1", source_type=SourceType.WIKI_PAGE, collection_key="DOCS", external_page_id="1"))
    await store.add_document(_document("wiki_2", source_type=SourceType.WIKI_PAGE, collection_key="OPS", external_page_id="2"))

    wiki = await store.get_documents_by_source(SourceType.WIKI_PAGE)
    assert {d.id for d in wiki} == {"wiki_1", "wiki_2"}
    docs_only = await store.get_documents_by_source(SourceType.WIKI_PAGE, collection_key="DOCS")
    assert [d.id for d in docs_only] == ["wiki_1"]
    assert docs_only[0].external_page_id == "1"


async def test_chunks_roundtrip_and_ordering(store):
    await store.add_document(_document("doc_a"))
    chunks = _chunks("doc_a", 3)
    await store.add_chunks(list(reversed(chunks)))

    by_doc = await store.get_chunks_by_doc_id("doc_a")
    assert [c.position for c in by_doc] == [0, 1, 2]
    assert by_doc[2].embedding == [2.0, 1.0]
    assert await store.get_chunk_count() == 3
    assert len(await store.get_all_chunks()) == 3


async def test_add_chunks_empty_is_noop(store):
    await store.add_chunks([])
    assert await store.get_chunk_count() == 0


async def test_delete_document_cascades_to_chunks(store):
    await store.add_document(_document("doc_a"))
    await store.add_document(_document("doc_b"))
    await store.add_chunks(_chunks("doc_a", 2) + _chunks("doc_b", 1))

    await store.delete_document("doc_a")
    await store.delete_document("does_not_exist")

    assert await store.get_document("doc_a") is None
    assert await store.get_chunks_by_doc_id("doc_a") == []
    assert [c.doc_id for c in await store.get_all_chunks()] == ["doc_b"]
    assert await store.get_document_count() == 1


async def test_clear_all_keeps_settings(store):
    await store.add_document(_document("doc_a"))
    await store.add_chunks(_chunks("doc_a", 2))
    await store.set_setting("embed_backend", "local")

    await store.clear_all()

    assert await store.get_document_count() == 0
    assert await store.get_chunk_count() == 0
    assert await store.get_setting("embed_backend") == "local"


async def test_settings_defaults_and_types(store):
    assert await store.get_setting("missing") is None
    assert await store.get_setting("missing", default=False) is False

    await store.set_setting("rag_enabled", True)
    await store.set_setting("embed_dimension", 384)
    assert await store.get_setting("rag_enabled") is True
    assert await store.get_setting("embed_dimension") == 384


async def test_sqlite_persists_across_instances(helper_config, monkeypatch, tmp_path):
    monkeypatch.setenv("VECTORSTORE_SQLITE_PATH", str(tmp_path / "persist.db"))
    first = VectorStoreSqlite(helper_config=helper_config)
    await first.add_document(_document("doc_a", source_type=SourceType.WIKI_PAGE, last_modified="2024-05-01T10:00:00Z"))
    await first.add_chunks(_chunks("doc_a", 2))

    second = VectorStoreSqlite(helper_config=helper_config)
    fetched = await second.get_document("doc_a")
    assert fetched.source_type == SourceType.WIKI_PAGE
    assert fetched.last_modified == "2024-05-01T10:00:00Z"
    assert await second.get_chunk_count() == 2


async def test_sqlite_unusable_path_raises_storage_error(helper_config, monkeypatch, tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    monkeypatch.setenv("VECTORSTORE_SQLITE_PATH", str(blocker / "store.db"))
    store = VectorStoreSqlite(helper_config=helper_config)

    with pytest.raises(StorageError):
        await store.initialize()


def test_manager_selects_engine(helper_config, monkeypatch, tmp_path):
    monkeypatch.setenv("VECTORSTORE_SQLITE_PATH", str(tmp_path / "m.db"))
    assert isinstance(VectorStoreManager(helper_config).get_client(), VectorStoreSqlite)

    monkeypatch.setenv("VECTORSTORE_ENGINE", "memory")
    assert isinstance(VectorStoreManager(helper_config).get_client(), VectorStoreMemory)

    monkeypatch.setenv("VECTORSTORE_ENGINE", "nosuchdb")
    with pytest.raises(ValueError):
        VectorStoreManager(helper_config)
