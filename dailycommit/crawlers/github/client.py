"""Async GitHub REST client for commit collection.

Every call returns a ``FetchResult`` instead of raising, so collection stages
can tell an expired credential apart from a recoverable per-repository error.
Rate-limited and transient responses are retried with bounded backoff.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime
import logging
import random
import re
import time
from typing import Any, Mapping, Optional

import httpx

from dailycommit.config.settings import settings
from dailycommit.crawlers.github.contracts import (
    CommitListContract,
    CountContract,
    EmailContract,
    FetchResult,
    FetchState,
    IdentityContract,
    RepoListContract,
)

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"

_SENSITIVE_KEYS = ("authorization", "token", "secret", "password", "api_key", "apikey", "session", "cookie", "credential")
_PAYLOAD_KEYS = ("body", "content", "payload", "raw")
_INLINE_SECRET_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9_\-\.=]+"),
    re.compile(r"(?i)((?:access_token|token|api_key|apikey|client_secret|password)\s*[=:]\s*)[^\s&,;\"']+"),
    re.compile(r"\b(gh[pousr]_)[A-Za-z0-9]{10,}\b"),
)
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _mask_inline(text: str) -> str:
    masked = text
    for pattern in _INLINE_SECRET_PATTERNS:
        masked = pattern.sub(lambda match: f"{match.group(1)}{REDACTED}", masked)
    return masked


def sanitize_for_log(value: Any, key: str | None = None) -> Any:
    """Redact credentials and large payloads before they reach log records."""

    lowered = (key or "").lower()
    if lowered and any(marker in lowered for marker in _SENSITIVE_KEYS):
        return REDACTED

    if isinstance(value, Mapping):
        return {str(k): sanitize_for_log(v, key=str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, key=key) for item in value]
    if isinstance(value, str):
        if lowered in _PAYLOAD_KEYS:
            return f"<redacted payload ({len(value)} chars)>"
        return _mask_inline(value)
    return value


def sanitize_log_extra(**fields: Any) -> dict[str, Any]:
    """Build a redacted ``extra`` mapping for structured log calls."""

    return {"context": sanitize_for_log(fields)}


def _page_from_url(url: str | None) -> Optional[int]:
    if not url:
        return None
    raw = httpx.URL(url).params.get("page")
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def _to_iso8601(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubCommitClient:
    """GitHub client covering identity, repositories, commits, and commit search."""

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_seconds: float | None = None,
        max_retries: int | None = None,
        backoff_base_seconds: float | None = None,
        backoff_max_seconds: float | None = None,
        rate_limit_buffer_seconds: float | None = None,
        max_rate_limit_wait_seconds: float = 60.0,
    ) -> None:
        self._token = token if token is not None else settings.GITHUB_TOKEN
        self._max_retries = max(int(max_retries if max_retries is not None else settings.MAX_RETRIES), 1)
        self._backoff_base = backoff_base_seconds if backoff_base_seconds is not None else settings.BACKOFF_BASE_SECONDS
        self._backoff_max = backoff_max_seconds if backoff_max_seconds is not None else settings.BACKOFF_MAX_SECONDS
        self._rate_limit_buffer = (
            rate_limit_buffer_seconds if rate_limit_buffer_seconds is not None else settings.RATE_LIMIT_BUFFER_SECONDS
        )
        self._max_rate_limit_wait = max_rate_limit_wait_seconds

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": settings.USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.GITHUB_API_URL,
            headers=headers,
            timeout=timeout_seconds if timeout_seconds is not None else settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubCommitClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # Endpoints ---------------------------------------------------------

    async def get_identity(self) -> IdentityContract:
        """Authenticated user: ``{id, login, email}``."""
        return await self._request("/user")

    async def list_user_emails(self) -> EmailContract:
        return await self._request("/user/emails")

    async def list_repositories(
        self,
        *,
        page: int = 1,
        per_page: int | None = None,
        affiliation: str = "owner,collaborator,organization_member",
    ) -> RepoListContract:
        params = {
            "affiliation": affiliation,
            "sort": "pushed",
            "per_page": per_page or settings.PER_PAGE,
            "page": page,
        }
        return await self._request("/user/repos", params=params)

    async def list_commits(
        self,
        owner: str,
        repo: str,
        *,
        since: datetime,
        until: datetime | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> CommitListContract:
        params: dict[str, Any] = {
            "since": _to_iso8601(since),
            "per_page": per_page or settings.PER_PAGE,
            "page": page,
        }
        if until is not None:
            params["until"] = _to_iso8601(until)
        return await self._request(f"/repos/{owner}/{repo}/commits", params=params)

    async def count_commits(self, login: str, *, start: date, end: date) -> CountContract:
        """Cheap aggregate count of commits authored by ``login`` in ``[start, end]``."""
        query = f"author:{login} author-date:{start.isoformat()}..{end.isoformat()}"
        result = await self._request("/search/commits", params={"q": query, "per_page": 1})
        if not result.is_ok:
            return FetchResult(state=result.state, status_code=result.status_code, error=result.error)

        payload = result.data if isinstance(result.data, dict) else {}
        try:
            total = int(payload.get("total_count", 0))
        except (TypeError, ValueError):
            return FetchResult(state=FetchState.FAILED, status_code=result.status_code, error="malformed search response")
        return FetchResult(state=FetchState.OK, data=total, status_code=result.status_code)

    # Transport ---------------------------------------------------------

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> FetchResult[Any]:
        last_status: int | None = None
        last_error: str | None = None

        for attempt in range(1, self._max_retries + 1):
            try:
                response = await self._client.get(path, params=params)
            except httpx.HTTPError as exc:
                last_status = None
                last_error = f"{exc.__class__.__name__}: {exc}"
                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff_delay(attempt))
                    continue
                break

            status = response.status_code
            last_status = status

            if status == 200:
                try:
                    data = response.json()
                except ValueError:
                    last_error = "malformed JSON response"
                    logger.warning(
                        "GitHub request failed",
                        extra=sanitize_log_extra(path=path, params=params, status_code=status, error=last_error),
                    )
                    return FetchResult(state=FetchState.FAILED, status_code=status, error=last_error)
                next_page = _page_from_url(response.links.get("next", {}).get("url"))
                state = FetchState.EMPTY if data in ([], {}) else FetchState.OK
                return FetchResult(state=state, data=data, next_page=next_page, status_code=status)

            if status == 409:
                # Empty repository: GitHub answers 409 for commit history
                return FetchResult(state=FetchState.EMPTY, data=[], status_code=status)

            if status == 401:
                last_error = self._error_message(response)
                logger.warning(
                    "GitHub request failed",
                    extra=sanitize_log_extra(path=path, params=params, status_code=status, error=last_error),
                )
                return FetchResult(state=FetchState.UNAUTHORIZED, status_code=status, error=last_error)

            rate_limit_wait = self._rate_limit_wait(response)
            if rate_limit_wait is not None:
                last_error = "rate limited"
                if attempt < self._max_retries and rate_limit_wait <= self._max_rate_limit_wait:
                    logger.info(
                        "GitHub rate limit hit, waiting before retry",
                        extra=sanitize_log_extra(path=path, wait_seconds=round(rate_limit_wait, 2), attempt=attempt),
                    )
                    await asyncio.sleep(rate_limit_wait)
                    continue
                break

            last_error = self._error_message(response)
            if status in _RETRYABLE_STATUS and attempt < self._max_retries:
                await asyncio.sleep(self._backoff_delay(attempt))
                continue
            break

        logger.warning(
            "GitHub request failed",
            extra=sanitize_log_extra(path=path, params=params, status_code=last_status, error=last_error),
        )
        return FetchResult(state=FetchState.FAILED, status_code=last_status, error=sanitize_for_log(last_error or "request failed"))

    def _rate_limit_wait(self, response: httpx.Response) -> float | None:
        """Seconds to wait before retrying a rate-limited response, or None if not rate limited."""
        status = response.status_code
        if status not in (403, 429):
            return None

        retry_after = response.headers.get("retry-after")
        if retry_after is not None:
            try:
                return max(float(retry_after), 0.0) + self._rate_limit_buffer
            except ValueError:
                return self._backoff_max

        reset = response.headers.get("x-ratelimit-reset")
        remaining = response.headers.get("x-ratelimit-remaining")
        if reset is not None and (status == 429 or remaining in (None, "0")):
            try:
                return max(float(reset) - time.time(), 0.0) + self._rate_limit_buffer
            except ValueError:
                return self._backoff_max

        if status == 429:
            return self._backoff_max
        return None

    def _backoff_delay(self, attempt: int) -> float:
        base = min(self._backoff_base * (2 ** max(attempt - 1, 0)), self._backoff_max)
        return base * random.uniform(0.75, 1.0)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        message = payload.get("message") if isinstance(payload, dict) else None
        return f"HTTP {response.status_code}: {message}" if message else f"HTTP {response.status_code}"
