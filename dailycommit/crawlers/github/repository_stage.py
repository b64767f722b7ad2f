"""Identity resolution and repository enumeration for commit sync."""

from __future__ import annotations

import logging
from typing import Any

from dailycommit.config.settings import settings
from dailycommit.crawlers.github.client import sanitize_log_extra
from dailycommit.crawlers.github.contracts import RepositoryRef
from dailycommit.crawlers.github.identity import TrackedIdentity
from dailycommit.errors import AuthenticationError, CollectionFailedError

logger = logging.getLogger(__name__)


class RepositoryEnumerator:
    """Lists every repository the credential can see, not only starred or pinned ones."""

    def __init__(
        self,
        client: Any,
        *,
        include_forks: bool | None = None,
        max_pages: int | None = None,
    ) -> None:
        self._client = client
        self._include_forks = settings.INCLUDE_FORKS if include_forks is None else include_forks
        self._max_pages = max_pages or settings.MAX_PAGES_PER_REPOSITORY

    async def resolve_identity(self) -> TrackedIdentity:
        """Resolve the authenticated account and its verified emails.

        Raises:
            AuthenticationError: if the host rejects the credential.
            CollectionFailedError: if the account cannot be read at all.
        """
        response = await self._client.get_identity()
        if response.is_unauthorized:
            raise AuthenticationError(status_code=response.status_code)
        if not response.is_ok or not isinstance(response.data, dict):
            raise CollectionFailedError(
                "Failed to resolve GitHub identity",
                failures=[response.error or "identity unavailable"],
            )

        emails_response = await self._client.list_user_emails()
        email_payloads: list[dict[str, Any]] = []
        if emails_response.is_ok and isinstance(emails_response.data, list):
            email_payloads = emails_response.data
        elif emails_response.is_failed:
            # Needs the user:email scope; the public email still applies
            logger.info(
                "Verified email lookup unavailable",
                extra=sanitize_log_extra(status_code=emails_response.status_code, error=emails_response.error),
            )

        identity = TrackedIdentity.from_payload(response.data, email_payloads)
        if not identity.login:
            raise CollectionFailedError("GitHub identity has no login")
        return identity

    async def list_repositories(self) -> list[RepositoryRef]:
        """Follow repository pagination until the host reports no further pages.

        A failure on the first page leaves nothing to sync and is raised;
        a failure on a later page keeps the repositories already listed.
        """
        repositories: dict[str, RepositoryRef] = {}
        page: int | None = 1
        pages = 0

        while page is not None and pages < self._max_pages:
            response = await self._client.list_repositories(page=page)
            pages += 1

            if response.is_unauthorized:
                raise AuthenticationError(status_code=response.status_code)
            if response.is_failed:
                if pages == 1:
                    raise CollectionFailedError(
                        "Failed to list repositories",
                        failures=[response.error or "repository listing failed"],
                    )
                logger.warning(
                    "Repository listing stopped early",
                    extra=sanitize_log_extra(page=page, listed=len(repositories), error=response.error),
                )
                page = None
                break
            if response.is_empty:
                break

            for payload in response.data or []:
                ref = self._to_ref(payload)
                if ref is None:
                    continue
                if ref.is_fork and not self._include_forks:
                    continue
                repositories.setdefault(ref.full_name.lower(), ref)

            page = response.next_page

        if page is not None and pages >= self._max_pages:
            logger.warning(
                "Repository listing hit page ceiling",
                extra=sanitize_log_extra(max_pages=self._max_pages, listed=len(repositories)),
            )

        return list(repositories.values())

    @staticmethod
    def _to_ref(payload: Any) -> RepositoryRef | None:
        if not isinstance(payload, dict):
            return None

        full_name = str(payload.get("full_name") or "").strip()
        if "/" in full_name:
            owner, name = full_name.split("/", 1)
        else:
            owner_payload = payload.get("owner") if isinstance(payload.get("owner"), dict) else {}
            owner = str(owner_payload.get("login") or "").strip()
            name = str(payload.get("name") or "").strip()
        if not owner or not name:
            return None

        return RepositoryRef(
            owner=owner.strip(),
            name=name.strip(),
            is_fork=bool(payload.get("fork") or False),
            is_private=bool(payload.get("private") or False),
        )
