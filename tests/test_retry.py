import httpx
import pytest

from vespasearch.errors import RemoteRejected, RemoteTransportError
from vespasearch.http import RetryPolicy, is_retryable_status, request_with_retry

from .helpers import RecordingTransport


def test_backoff_doubles_and_clamps() -> None:
    policy = RetryPolicy(max_retries=6, base_delay=1.0, max_delay=10.0)
    assert policy.delays() == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


def test_zero_retries_has_no_delays() -> None:
    assert RetryPolicy(max_retries=0).delays() == []


@pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 599])
def test_retryable_statuses(status: int) -> None:
    assert is_retryable_status(status)


@pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
def test_client_errors_are_not_retryable(status: int) -> None:
    assert not is_retryable_status(status)


@pytest.mark.asyncio
async def test_retries_until_budget_exhausted(sleeper) -> None:
    transport = RecordingTransport(lambda request: httpx.Response(503, text="busy"))
    policy = RetryPolicy(max_retries=3, base_delay=0.5, max_delay=1.5)

    async with transport.client() as client:
        with pytest.raises(RemoteRejected) as excinfo:
            await request_with_retry(
                client, "POST", "https://svc.test/x", service="embedding",
                policy=policy, sleep=sleeper,
            )

    assert excinfo.value.status == 503
    assert len(transport.requests) == policy.max_retries + 1
    assert sleeper.delays == [0.5, 1.0, 1.5]


@pytest.mark.asyncio
async def test_non_retryable_status_fails_immediately(sleeper) -> None:
    transport = RecordingTransport(lambda request: httpx.Response(400, text="bad input"))

    async with transport.client() as client:
        with pytest.raises(RemoteRejected) as excinfo:
            await request_with_retry(
                client, "POST", "https://svc.test/x", service="embedding",
                policy=RetryPolicy(max_retries=5), sleep=sleeper,
            )

    assert excinfo.value.status == 400
    assert "bad input" in str(excinfo.value)
    assert len(transport.requests) == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_rate_limit_then_success(sleeper) -> None:
    responses = iter([httpx.Response(429), httpx.Response(200, json={"ok": True})])
    transport = RecordingTransport(lambda request: next(responses))

    async with transport.client() as client:
        response = await request_with_retry(
            client, "GET", "https://svc.test/x", service="summarization",
            policy=RetryPolicy(max_retries=2, base_delay=2.0, max_delay=8.0),
            sleep=sleeper,
        )

    assert response.json() == {"ok": True}
    assert sleeper.delays == [2.0]


@pytest.mark.asyncio
async def test_transport_errors_are_retried(sleeper) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=[0.1])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        response = await request_with_retry(
            client, "POST", "https://svc.test/x", service="embedding",
            policy=RetryPolicy(max_retries=3, base_delay=1.0, max_delay=4.0),
            sleep=sleeper,
        )

    assert response.status_code == 200
    assert calls["count"] == 3
    assert sleeper.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_transport_errors_raise_last_error(sleeper) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RemoteTransportError, match="timed out"):
            await request_with_retry(
                client, "POST", "https://svc.test/x", service="embedding",
                policy=RetryPolicy(max_retries=1), sleep=sleeper,
            )
    assert sleeper.delays == [1.0]


@pytest.mark.asyncio
async def test_undecodable_body_is_a_transport_error(sleeper) -> None:
    transport = RecordingTransport(
        lambda request: httpx.Response(
            200, headers={"Content-Encoding": "gzip"}, content=b"not gzip"
        )
    )

    async with transport.client() as client:
        with pytest.raises(RemoteTransportError) as excinfo:
            await request_with_retry(
                client, "POST", "https://svc.test/x", service="summarization",
                policy=RetryPolicy(max_retries=3), sleep=sleeper,
            )

    assert excinfo.value.status_code == 502
    assert str(excinfo.value).startswith("summarization request failed:")
    assert len(transport.requests) == 1
    assert sleeper.delays == []
