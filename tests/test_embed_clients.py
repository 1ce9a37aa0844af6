import asyncio
import json
import threading

import httpx
import pytest
import respx

from shared.clients.embed.azure.EmbedClientAzure import EmbedClientAzure
from shared.clients.embed.local.EmbedClientLocal import EmbedClientLocal
from shared.clients.embed.openai.EmbedClientOpenai import EmbedClientOpenai
from shared.exceptions import InitializationTimeout, InvalidInput, UpstreamError

OPENAI_URL = "https://api.openai.com/v1/embeddings"


@pytest.fixture
def openai_client(helper_config, monkeypatch):
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("EMBED_OPENAI_DIMENSIONS", "3")
    monkeypatch.setenv("EMBED_BATCH_SIZE", "2")
    return EmbedClientOpenai(helper_config=helper_config)


def _embedding_response(request: httpx.Request) -> httpx.Response:
    """Answer with one vector per input, deliberately in reverse index order."""
    texts = json.loads(request.content)["input"]
    data = [{"index": i, "embedding": [float(len(t)), float(i), 1.0]} for i, t in enumerate(texts)]
    return httpx.Response(200, json={"data": list(reversed(data))})


def test_openai_requires_api_key(helper_config):
    with pytest.raises(ValueError):
        EmbedClientOpenai(helper_config=helper_config)


async def test_openai_embed_batch_restores_order_across_sub_batches(openai_client):
    texts = ["a", "bb", "ccc", "dddd", "eeeee"]
    events = []
    async with respx.mock:
        route = respx.post(OPENAI_URL).mock(side_effect=_embedding_response)
        vectors = await openai_client.embed_batch(texts, on_progress=events.append)

    # batch size 2 -> 3 requests
    assert route.call_count == 3
    assert [v[0] for v in vectors] == [1.0, 2.0, 3.0, 4.0, 5.0]
    assert [(e.current, e.total) for e in events] == [(2, 5), (4, 5), (5, 5)]
    assert all(e.stage == "embedding" for e in events)

    request = route.calls[0].request
    assert request.headers["Authorization"] == "Bearer sk-test"
    payload = json.loads(request.content)
    assert payload["model"] == "text-embedding-3-large"
    assert payload["dimensions"] == 3
    await openai_client.close()


async def test_embed_single_text(openai_client):
    async with respx.mock:
        respx.post(OPENAI_URL).mock(side_effect=_embedding_response)
        vector = await openai_client.embed("hello")
    assert vector == [5.0, 0.0, 1.0]
    await openai_client.close()


async def test_empty_input_is_rejected_before_any_request(openai_client):
    async with respx.mock(assert_all_called=False):
        route = respx.post(OPENAI_URL).mock(side_effect=_embedding_response)
        with pytest.raises(InvalidInput):
            await openai_client.embed_batch(["fine", "  "])
        with pytest.raises(InvalidInput):
            await openai_client.embed("")
        assert await openai_client.embed_batch([]) == []
    assert not route.called


async def test_error_status_becomes_upstream_error(openai_client):
    async with respx.mock:
        respx.post(OPENAI_URL).mock(return_value=httpx.Response(429, json={"error": {"message": "Rate limit reached"}}))
        with pytest.raises(UpstreamError) as excinfo:
            await openai_client.embed("hello")

    assert excinfo.value.status_code == 429
    assert "Rate limit reached" in str(excinfo.value)
    await openai_client.close()


async def test_timeout_becomes_upstream_error(openai_client):
    async with respx.mock:
        respx.post(OPENAI_URL).mock(side_effect=httpx.ReadTimeout("too slow"))
        with pytest.raises(UpstreamError, match="timed out"):
            await openai_client.embed("hello")
    await openai_client.close()


async def test_wrong_dimension_is_upstream_error(openai_client):
    async with respx.mock:
        respx.post(OPENAI_URL).mock(return_value=httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]}))
        with pytest.raises(UpstreamError):
            await openai_client.embed("hello")
    await openai_client.close()


async def test_malformed_response_is_upstream_error(openai_client):
    async with respx.mock:
        respx.post(OPENAI_URL).mock(return_value=httpx.Response(200, json={"unexpected": True}))
        with pytest.raises(UpstreamError):
            await openai_client.embed("hello")
    await openai_client.close()


async def test_azure_posts_to_deployment_url(helper_config, monkeypatch):
    endpoint = "https://res.openai.azure.com/openai/deployments/emb/embeddings?api-version=2024-02-01"
    monkeypatch.setenv("EMBED_AZURE_API_KEY", "azure-key")
    monkeypatch.setenv("EMBED_AZURE_ENDPOINT", endpoint)
    monkeypatch.setenv("EMBED_AZURE_DIMENSIONS", "3")
    client = EmbedClientAzure(helper_config=helper_config)

    async with respx.mock:
        route = respx.post(endpoint).mock(side_effect=_embedding_response)
        vectors = await client.embed_batch(["one", "three"])

    assert [v[0] for v in vectors] == [3.0, 5.0]
    request = route.calls.last.request
    assert request.headers["api-key"] == "azure-key"
    assert request.url.params["api-version"] == "2024-02-01"
    assert client.get_backend_name() == "azure"
    await client.close()


class _FakeSentenceModel:
    def encode(self, texts, **kwargs):
        return [[1.0, float(len(t)), 0.0] for t in texts]


@pytest.fixture
def local_client(helper_config, monkeypatch):
    monkeypatch.setenv("EMBED_LOCAL_DIMENSIONS", "3")
    monkeypatch.setenv("EMBED_LOCAL_BATCH_SIZE", "2")
    return EmbedClientLocal(helper_config=helper_config)


async def test_local_initialization_is_shared_by_concurrent_callers(local_client, monkeypatch):
    loads = []

    def _load():
        loads.append(threading.get_ident())
        return _FakeSentenceModel()

    monkeypatch.setattr(local_client, "_load_model", _load)
    progress = []

    await asyncio.gather(
        local_client.initialize(on_progress=progress.append),
        local_client.initialize(),
        local_client.embed_batch(["x", "yy", "zzz"]),
    )

    assert len(loads) == 1
    assert local_client.is_ready()
    assert [p.status for p in progress] == ["initiate", "ready"]
    assert await local_client.embed_batch(["abcd"]) == [[1.0, 4.0, 0.0]]


async def test_local_initialization_timeout_allows_retry(local_client, monkeypatch):
    monkeypatch.setattr(local_client, "_init_timeout", 0.05)
    release = threading.Event()

    def _slow_load():
        release.wait(2)
        return _FakeSentenceModel()

    monkeypatch.setattr(local_client, "_load_model", _slow_load)
    with pytest.raises(InitializationTimeout):
        await local_client.initialize()
    release.set()

    assert not local_client.is_ready()
    monkeypatch.setattr(local_client, "_load_model", lambda: _FakeSentenceModel())
    await local_client.initialize()
    assert local_client.is_ready()


async def test_local_close_unloads_model(local_client, monkeypatch):
    monkeypatch.setattr(local_client, "_load_model", lambda: _FakeSentenceModel())
    await local_client.initialize()
    await local_client.close()
    assert not local_client.is_ready()
