import pytest

from shared.clients.embed.EmbedClientManager import SETTING_BACKEND, SETTING_DIMENSION, EmbedClientManager
from shared.clients.embed.local.EmbedClientLocal import EmbedClientLocal
from shared.clients.embed.openai.EmbedClientOpenai import EmbedClientOpenai
from shared.exceptions import BackendUnavailable, InvalidInput
from shared.models.document import Chunk, Document


@pytest.fixture
def manager(helper_config, memory_store) -> EmbedClientManager:
    return EmbedClientManager(helper_config=helper_config, vector_store=memory_store)


async def _fill(store):
    await store.add_document(Document(id="doc_1", name="a.txt"))
    await store.add_chunks([Chunk(id="doc_1_0", doc_id="doc_1", text="x", embedding=[0.1] * 384)])


def test_detect_engine_priority(manager, monkeypatch):
    assert manager.detect_engine() == "local"

    # azure needs key and endpoint
    monkeypatch.setenv("EMBED_AZURE_API_KEY", "azure-key")
    assert manager.detect_engine() == "local"
    monkeypatch.setenv("EMBED_AZURE_ENDPOINT", "https://res.openai.azure.com/x")
    assert manager.detect_engine() == "azure"

    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    assert manager.detect_engine() == "openai"


async def test_boot_uses_explicit_engine_and_persists_it(manager, memory_store, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "local")
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")

    client = await manager.boot()

    assert isinstance(client, EmbedClientLocal)
    assert await manager.boot() is client
    assert await memory_store.get_setting(SETTING_BACKEND) == "local"
    assert await memory_store.get_setting(SETTING_DIMENSION) == 384
    assert manager.get_backend_name() == "local"
    assert manager.get_dimension() == 384


async def test_boot_prefers_persisted_backend_over_detection(manager, memory_store, monkeypatch):
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(EmbedClientLocal, "is_available", lambda self: True)
    await memory_store.set_setting(SETTING_BACKEND, "local")
    await memory_store.set_setting(SETTING_DIMENSION, 384)

    client = await manager.boot()
    assert isinstance(client, EmbedClientLocal)


async def test_boot_falls_back_when_persisted_backend_lost_credentials(manager, memory_store):
    await memory_store.set_setting(SETTING_BACKEND, "openai")
    await memory_store.set_setting(SETTING_DIMENSION, 1536)

    client = await manager.boot()

    assert isinstance(client, EmbedClientLocal)
    assert await memory_store.get_setting(SETTING_BACKEND) == "local"
    assert await memory_store.get_setting(SETTING_DIMENSION) == 384


async def test_boot_falls_back_when_persisted_backend_cannot_run(manager, memory_store, monkeypatch):
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(EmbedClientLocal, "is_available", lambda self: False)
    await memory_store.set_setting(SETTING_BACKEND, "local")

    client = await manager.boot()

    assert isinstance(client, EmbedClientOpenai)
    await manager.close()


async def test_boot_clears_store_when_persisted_dimension_differs(manager, memory_store, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "openai")
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    await _fill(memory_store)
    await memory_store.set_setting(SETTING_DIMENSION, 384)

    await manager.boot()

    assert await memory_store.get_document_count() == 0
    assert await memory_store.get_setting(SETTING_DIMENSION) == 1536
    await manager.close()


async def test_switch_backend_with_new_dimension_clears_store(manager, memory_store, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "local")
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    await manager.boot()
    await _fill(memory_store)

    changed = await manager.switch_backend("openai")

    assert changed is True
    assert isinstance(manager.get_client(), EmbedClientOpenai)
    assert await memory_store.get_document_count() == 0
    assert await memory_store.get_chunk_count() == 0
    assert await memory_store.get_setting(SETTING_BACKEND) == "openai"
    assert await memory_store.get_setting(SETTING_DIMENSION) == 1536
    await manager.close()


async def test_switch_backend_with_same_dimension_keeps_store(manager, memory_store, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "openai")
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("EMBED_AZURE_API_KEY", "azure-key")
    monkeypatch.setenv("EMBED_AZURE_ENDPOINT", "https://res.openai.azure.com/x")
    await manager.boot()
    await _fill(memory_store)

    assert await manager.switch_backend("azure") is True
    assert await memory_store.get_document_count() == 1
    await manager.close()


async def test_switch_to_active_backend_is_noop(manager, memory_store, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "local")
    client = await manager.boot()
    await _fill(memory_store)

    assert await manager.switch_backend("LOCAL") is False
    assert manager.get_client() is client
    assert await memory_store.get_document_count() == 1


async def test_switch_to_unknown_or_unconfigured_backend(manager, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "local")
    await manager.boot()

    with pytest.raises(InvalidInput):
        await manager.switch_backend("word2vec")
    # no API key configured
    with pytest.raises(BackendUnavailable):
        await manager.switch_backend("openai")
    assert manager.get_backend_name() == "local"


async def test_switch_to_unavailable_backend(manager, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "openai")
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    await manager.boot()
    monkeypatch.setattr(EmbedClientLocal, "is_available", lambda self: False)

    with pytest.raises(BackendUnavailable):
        await manager.switch_backend("local")
    assert manager.get_backend_name() == "openai"
    await manager.close()


async def test_refresh_backend_follows_new_credentials(manager, monkeypatch):
    monkeypatch.setenv("EMBED_ENGINE", "local")
    await manager.boot()
    monkeypatch.delenv("EMBED_ENGINE")
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")

    assert await manager.refresh_backend() is True
    assert manager.get_backend_name() == "openai"
    await manager.close()


def test_provider_api_requires_boot(manager):
    with pytest.raises(BackendUnavailable):
        manager.get_client()
    assert manager.is_available() is False
