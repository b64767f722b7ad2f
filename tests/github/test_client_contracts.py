import asyncio
from datetime import UTC, date, datetime
import time

import httpx
import pytest

from dailycommit.crawlers.github.client import GitHubCommitClient
from dailycommit.crawlers.github.contracts import FetchState


def _transport_from_sequence(responses: list[httpx.Response]) -> httpx.MockTransport:
    queue = responses.copy()

    async def handler(_: httpx.Request) -> httpx.Response:
        if not queue:
            raise AssertionError("No more mock responses available")
        return queue.pop(0)

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_get_identity_returns_ok_contract_for_200() -> None:
    transport = _transport_from_sequence([httpx.Response(200, json={"id": 7, "login": "octo"})])
    client = GitHubCommitClient(token="test", transport=transport, max_retries=2)

    result = await client.get_identity()
    await client.aclose()

    assert result.state == FetchState.OK
    assert result.data == {"id": 7, "login": "octo"}
    assert result.has_next_page is False


@pytest.mark.asyncio
async def test_list_repositories_reads_next_page_from_link_header() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            headers={"link": '<https://api.github.com/user/repos?page=2&per_page=100>; rel="next"'},
            json=[{"full_name": "octo/one"}],
        )

    client = GitHubCommitClient(token="test", transport=httpx.MockTransport(handler), max_retries=1)

    result = await client.list_repositories(page=1, per_page=100)
    await client.aclose()

    assert result.state == FetchState.OK
    assert result.next_page == 2
    assert seen[0].url.params["affiliation"] == "owner,collaborator,organization_member"
    assert seen[0].headers["authorization"] == "Bearer test"


@pytest.mark.asyncio
async def test_list_commits_sends_since_in_utc() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"sha": "abc"}])

    client = GitHubCommitClient(token="test", transport=httpx.MockTransport(handler), max_retries=1)

    result = await client.list_commits("octo", "repo", since=datetime(2024, 1, 1, 5, 0, tzinfo=UTC), page=3)
    await client.aclose()

    assert result.state == FetchState.OK
    assert result.next_page is None
    assert seen[0].url.path == "/repos/octo/repo/commits"
    assert seen[0].url.params["since"] == "2024-01-01T05:00:00Z"
    assert seen[0].url.params["page"] == "3"


@pytest.mark.asyncio
async def test_list_commits_returns_empty_contract_for_empty_repository() -> None:
    transport = _transport_from_sequence([httpx.Response(409, json={"message": "Git Repository is empty."})])
    client = GitHubCommitClient(token="test", transport=transport, max_retries=2)

    result = await client.list_commits("octo", "empty", since=datetime(2024, 1, 1, tzinfo=UTC))
    await client.aclose()

    assert result.state == FetchState.EMPTY
    assert result.data == []


@pytest.mark.asyncio
async def test_empty_200_returns_empty_contract() -> None:
    transport = _transport_from_sequence([httpx.Response(200, json=[])])
    client = GitHubCommitClient(token="test", transport=transport, max_retries=2)

    result = await client.list_repositories()
    await client.aclose()

    assert result.state == FetchState.EMPTY
    assert result.data == []


@pytest.mark.asyncio
async def test_non_json_200_returns_failed_contract() -> None:
    transport = _transport_from_sequence(
        [httpx.Response(200, content=b"<html>maintenance</html>", headers={"content-type": "text/html"})]
    )
    client = GitHubCommitClient(token="test", transport=transport, max_retries=2)

    result = await client.get_identity()
    await client.aclose()

    assert result.state == FetchState.FAILED
    assert result.status_code == 200
    assert result.error == "malformed JSON response"


@pytest.mark.asyncio
async def test_401_returns_unauthorized_without_retry() -> None:
    attempts: list[int] = []

    async def handler(_: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(401, json={"message": "Bad credentials"})

    client = GitHubCommitClient(token="expired", transport=httpx.MockTransport(handler), max_retries=3)

    result = await client.get_identity()
    await client.aclose()

    assert result.state == FetchState.UNAUTHORIZED
    assert result.status_code == 401
    assert result.error == "HTTP 401: Bad credentials"
    assert len(attempts) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code,headers",
    [
        (429, {"retry-after": "0"}),
        (403, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": str(int(time.time()))}),
        (502, {}),
    ],
)
async def test_rate_limited_and_transient_responses_retry_then_succeed(
    monkeypatch: pytest.MonkeyPatch,
    status_code: int,
    headers: dict[str, str],
) -> None:
    attempts: list[int] = []

    async def handler(_: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(status_code, headers=headers)
        return httpx.Response(200, json={"id": 7, "login": "octo"})

    sleeps: list[float] = []

    async def fast_sleep(delay: float) -> None:
        sleeps.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fast_sleep)

    client = GitHubCommitClient(
        token="test",
        transport=httpx.MockTransport(handler),
        max_retries=3,
        backoff_base_seconds=0.01,
        backoff_max_seconds=0.01,
        rate_limit_buffer_seconds=0,
    )
    try:
        result = await client.get_identity()
    finally:
        await client.aclose()

    assert result.state == FetchState.OK
    assert len(attempts) == 2
    assert len(sleeps) == 1


@pytest.mark.asyncio
async def test_rate_limit_failure_returns_failed_contract_after_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fast_sleep(_: float) -> None:
        return None

    monkeypatch.setattr(asyncio, "sleep", fast_sleep)

    transport = _transport_from_sequence(
        [
            httpx.Response(429, headers={"retry-after": "0"}),
            httpx.Response(429, headers={"retry-after": "0"}),
        ]
    )
    client = GitHubCommitClient(
        token="test",
        transport=transport,
        max_retries=2,
        backoff_base_seconds=0.01,
        backoff_max_seconds=0.01,
    )

    result = await client.get_identity()
    await client.aclose()

    assert result.state == FetchState.FAILED
    assert result.status_code == 429
    assert result.error is not None


@pytest.mark.asyncio
async def test_transport_error_returns_failed_contract(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fast_sleep(_: float) -> None:
        return None

    monkeypatch.setattr(asyncio, "sleep", fast_sleep)

    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = GitHubCommitClient(token="test", transport=httpx.MockTransport(handler), max_retries=2)

    result = await client.list_commits("octo", "repo", since=datetime(2024, 1, 1, tzinfo=UTC))
    await client.aclose()

    assert result.state == FetchState.FAILED
    assert result.status_code is None
    assert "ConnectError" in (result.error or "")


@pytest.mark.asyncio
async def test_count_commits_reads_total_count_from_search() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"total_count": 412, "items": [{"sha": "abc"}]})

    client = GitHubCommitClient(token="test", transport=httpx.MockTransport(handler), max_retries=1)

    result = await client.count_commits("octo", start=date(2024, 1, 1), end=date(2024, 6, 5))
    await client.aclose()

    assert result.state == FetchState.OK
    assert result.data == 412
    assert seen[0].url.path == "/search/commits"
    assert seen[0].url.params["q"] == "author:octo author-date:2024-01-01..2024-06-05"


@pytest.mark.asyncio
async def test_count_commits_propagates_failure_state() -> None:
    transport = _transport_from_sequence([httpx.Response(422, json={"message": "Validation Failed"})])
    client = GitHubCommitClient(token="test", transport=transport, max_retries=1)

    result = await client.count_commits("octo", start=date(2024, 1, 1), end=date(2024, 6, 5))
    await client.aclose()

    assert result.state == FetchState.FAILED
    assert result.data is None
    assert result.status_code == 422


@pytest.mark.asyncio
async def test_client_closes_when_used_as_context_manager() -> None:
    transport = _transport_from_sequence([httpx.Response(200, json=[{"email": "octo@example.com", "verified": True}])])

    async with GitHubCommitClient(token="test", transport=transport) as client:
        result = await client.list_user_emails()

    assert result.is_ok
    assert client._client.is_closed
