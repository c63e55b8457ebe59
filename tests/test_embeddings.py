import json

import httpx
import pytest

from vespasearch.embeddings import (
    EmbeddingCache,
    EmbeddingProviderFactory,
    normalize_dimension,
    parse_embedding_response,
)
from vespasearch.embeddings.providers import (
    FlatVector,
    HuggingFaceEmbeddings,
    TokenMatrix,
    ZeroEmbeddings,
)
from vespasearch.errors import ConfigError, EmbeddingParseError, RemoteRejected
from vespasearch.storage.artifacts import sha256_hex

from .helpers import RecordingTransport


def test_flat_vector_is_used_directly() -> None:
    parsed = parse_embedding_response([0.5, 1, -2.0])
    assert isinstance(parsed, FlatVector)
    assert parsed.pooled() == [0.5, 1.0, -2.0]


def test_token_matrix_is_mean_pooled() -> None:
    parsed = parse_embedding_response([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
    assert isinstance(parsed, TokenMatrix)
    assert parsed.pooled() == [3.0, 4.0]


@pytest.mark.parametrize(
    "payload",
    [
        {"error": "Model is loading"},
        {"embeddings": [0.1]},
        [],
        ["a", "b"],
        [[0.1, 0.2], [0.3]],
        [[[0.1]]],
        [True, False],
        "0.1,0.2",
    ],
)
def test_unexpected_shapes_are_rejected(payload) -> None:
    with pytest.raises(EmbeddingParseError):
        parse_embedding_response(payload)


def test_error_field_message_is_kept() -> None:
    with pytest.raises(EmbeddingParseError, match="Model is loading"):
        parse_embedding_response({"error": "Model is loading"})


def test_short_vector_is_zero_padded() -> None:
    values = normalize_dimension([1.0] * 700, 768)
    assert len(values) == 768
    assert values[699] == 1.0
    assert values[700:] == [0.0] * 68


def test_long_vector_is_truncated() -> None:
    values = normalize_dimension([float(i) for i in range(900)], 768)
    assert len(values) == 768
    assert values[-1] == 767.0


def _hf(transport: RecordingTransport, no_retry, **kwargs) -> HuggingFaceEmbeddings:
    options = dict(
        api_base="https://hf.test/models/",
        model="org/encoder",
        api_key="hf-token",
        dimension=768,
        max_chars=10,
        policy=no_retry,
        http_client=transport.client(),
    )
    options.update(kwargs)
    return HuggingFaceEmbeddings(**options)


@pytest.mark.asyncio
async def test_request_contract(no_retry) -> None:
    transport = RecordingTransport(lambda request: httpx.Response(200, json=[0.1] * 768))
    embedder = _hf(transport, no_retry)

    await embedder.embed("abcdefghijklmnop")
    await embedder.aclose()

    request = transport.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://hf.test/models/org/encoder/pipeline/feature-extraction"
    assert request.headers["Authorization"] == "Bearer hf-token"
    body = json.loads(request.content)
    assert body == {"inputs": "abcdefghij", "options": {"wait_for_model": True}}


@pytest.mark.asyncio
async def test_remote_vector_is_normalized(no_retry) -> None:
    transport = RecordingTransport(lambda request: httpx.Response(200, json=[0.25] * 900))
    embedder = _hf(transport, no_retry)

    vector = await embedder.embed("fn main() {}")
    await embedder.aclose()

    assert len(vector) == 768


@pytest.mark.asyncio
async def test_cache_hit_skips_network(tmp_path, no_retry) -> None:
    transport = RecordingTransport(lambda request: httpx.Response(200, json=[0.5] * 700))
    embedder = _hf(transport, no_retry, max_chars=8000)
    cache = EmbeddingCache(tmp_path / "vectors")
    text = "def parse(expr):\n    return expr\n"

    first = await embedder.embed(text, cache=cache)
    second = await embedder.embed(text, cache=cache)
    await embedder.aclose()

    assert first == second
    assert len(first) == 768
    assert len(transport.requests) == 1
    assert (tmp_path / "vectors" / f"{sha256_hex(text.encode('utf-8'))}.json").exists()


@pytest.mark.asyncio
async def test_cache_write_failure_is_not_fatal(tmp_path, no_retry) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied", encoding="utf-8")
    transport = RecordingTransport(lambda request: httpx.Response(200, json=[1.0] * 768))
    embedder = _hf(transport, no_retry)

    vector = await embedder.embed("hello", cache=EmbeddingCache(blocker / "vectors"))
    await embedder.aclose()

    assert vector == [1.0] * 768


@pytest.mark.asyncio
async def test_error_payload_raises(no_retry) -> None:
    transport = RecordingTransport(
        lambda request: httpx.Response(200, json={"error": "CUDA out of memory"})
    )
    embedder = _hf(transport, no_retry)

    with pytest.raises(EmbeddingParseError):
        await embedder.embed("hello")
    await embedder.aclose()


@pytest.mark.asyncio
async def test_rejection_is_propagated(no_retry) -> None:
    transport = RecordingTransport(lambda request: httpx.Response(401, text="unauthorized"))
    embedder = _hf(transport, no_retry)

    with pytest.raises(RemoteRejected):
        await embedder.embed("hello")
    await embedder.aclose()


@pytest.mark.asyncio
async def test_zero_provider_returns_fixed_dimension() -> None:
    embedder = ZeroEmbeddings(dimension=4)
    assert await embedder.embed("anything") == [0.0, 0.0, 0.0, 0.0]


def test_factory_selects_provider(cfg) -> None:
    assert isinstance(EmbeddingProviderFactory.create("none", cfg=cfg), ZeroEmbeddings)
    hf = EmbeddingProviderFactory.create("huggingface", cfg=cfg)
    assert isinstance(hf, HuggingFaceEmbeddings)
    assert hf.dimension == cfg.embedding_dimension


def test_factory_rejects_unknown_provider(cfg) -> None:
    with pytest.raises(ConfigError):
        EmbeddingProviderFactory.create("word2vec", cfg=cfg)
