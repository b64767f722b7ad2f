"""Commit authorship matching for the tracked GitHub identity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

NOREPLY_DOMAIN = "users.noreply.github.com"


@dataclass(frozen=True, slots=True)
class TrackedIdentity:
    """Authenticated account whose commits are counted."""

    id: int | None
    login: str
    emails: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_payload(
        cls,
        user: dict[str, Any],
        email_payloads: Iterable[dict[str, Any]] = (),
    ) -> "TrackedIdentity":
        """Build from ``GET /user`` plus the verified entries of ``GET /user/emails``."""
        emails: set[str] = set()
        primary = user.get("email")
        if isinstance(primary, str) and primary.strip():
            emails.add(primary.strip().lower())
        for entry in email_payloads:
            address = entry.get("email") if isinstance(entry, dict) else None
            if isinstance(address, str) and entry.get("verified", False):
                emails.add(address.strip().lower())

        raw_id = user.get("id")
        return cls(
            id=raw_id if isinstance(raw_id, int) else None,
            login=str(user.get("login") or ""),
            emails=frozenset(emails),
        )

    @property
    def noreply_addresses(self) -> frozenset[str]:
        login = self.login.lower()
        if not login:
            return frozenset()
        addresses = {f"{login}@{NOREPLY_DOMAIN}"}
        if self.id is not None:
            addresses.add(f"{self.id}+{login}@{NOREPLY_DOMAIN}")
        return frozenset(addresses)


def match_reason(commit: dict[str, Any], identity: TrackedIdentity) -> Optional[str]:
    """Return why ``commit`` belongs to ``identity`` or None when it does not.

    Checked in order: linked account, verified email, no-reply email.
    A matching author *name* alone never counts.
    """
    linked = commit.get("author")
    if isinstance(linked, dict):
        if identity.id is not None and linked.get("id") == identity.id:
            return "linked_account"
        linked_login = linked.get("login")
        if isinstance(linked_login, str) and identity.login and linked_login.lower() == identity.login.lower():
            return "linked_account"

    details = commit.get("commit") if isinstance(commit.get("commit"), dict) else {}
    author = details.get("author") if isinstance(details.get("author"), dict) else {}
    email = author.get("email")
    if not isinstance(email, str) or not email.strip():
        return None

    email = email.strip().lower()
    if email in identity.emails:
        return "verified_email"
    if email in identity.noreply_addresses:
        return "noreply_email"
    return None


def is_authored_by(commit: dict[str, Any], identity: TrackedIdentity) -> bool:
    return match_reason(commit, identity) is not None
