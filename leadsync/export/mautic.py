"""
Mautic REST client implementing the PublicationProvider protocol.

    GET   {base}/api/contacts?search=email:<addr>          -> search
    POST  {base}/api/contacts/new                          -> create
    PATCH {base}/api/contacts/<id>/edit?overwriteWithBlank=false  -> update

The search endpoint matches loosely; callers must pick the exact email
match themselves (see leadsync.export.publisher).

PATCH with overwriteWithBlank=false leaves fields we omit untouched on the
Mautic side. That guarantee comes from Mautic, not from us: we only promise
never to send an explicit blank.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from leadsync.config import MauticSettings
from leadsync.export.provider import CrmContact
from leadsync.remote.retry import RetryPolicy, request_json

PROVIDER = "Mautic"


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _contact_email(contact: Mapping[str, Any]) -> str:
    """Email of a search hit; '' when the contact has an unexpected shape."""
    fields = _mapping(contact.get("fields"))
    core_email = _mapping(_mapping(fields.get("core")).get("email")).get("value")
    if core_email:
        return str(core_email)
    all_email = _mapping(fields.get("all")).get("email")
    return str(all_email or "")


def _iter_contacts(raw: Any) -> Iterable[tuple[Any, Mapping[str, Any]]]:
    # Mautic returns {"<id>": {...}} with hits and [] without.
    if isinstance(raw, Mapping):
        for contact_id, contact in raw.items():
            if isinstance(contact, Mapping):
                yield contact_id, contact
    elif isinstance(raw, list):
        for contact in raw:
            if isinstance(contact, Mapping):
                yield contact.get("id"), contact


class MauticClient:
    def __init__(
        self,
        settings: MauticSettings,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        # Mautic does not rate-limit by default; a 429 is treated as permanent.
        self.policy = RetryPolicy(max_attempts=settings.max_attempts, retry_on_rate_limit=False)
        self._client = client or httpx.Client(
            auth=httpx.BasicAuth(settings.user, settings.password),
            timeout=httpx.Timeout(settings.timeout_s),
            headers={"Accept": "application/json"},
        )

    def __enter__(self) -> MauticClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        return request_json(
            self._client,
            method,
            f"{self.settings.base_url}{path}",
            policy=self.policy,
            provider=PROVIDER,
            **kwargs,
        )

    # ---- PublicationProvider ----------------------------------------------------

    def search(self, email: str) -> list[CrmContact]:
        data = self._call("GET", "/api/contacts", params={"search": f"email:{email}"})
        found: list[CrmContact] = []
        for contact_id, contact in _iter_contacts(data.get("contacts")):
            if contact_id in (None, ""):
                continue
            found.append(CrmContact(id=str(contact_id), email=_contact_email(contact)))
        return found

    def create(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        return self._call("POST", "/api/contacts/new", json=dict(fields))

    def update(self, contact_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        return self._call(
            "PATCH",
            f"/api/contacts/{contact_id}/edit",
            params={"overwriteWithBlank": "false"},
            json=dict(fields),
        )


__all__ = ["MauticClient", "PROVIDER"]
