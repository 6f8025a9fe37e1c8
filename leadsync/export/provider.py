from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class CrmContact:
    id: str
    email: str


class PublicationProvider(Protocol):
    def search(self, email: str) -> list[CrmContact]: ...

    def create(self, fields: Mapping[str, Any]) -> Any: ...

    def update(self, contact_id: str, fields: Mapping[str, Any]) -> Any:
        """Partial update; fields not in `fields` must be left as they are."""
        ...


__all__ = ["CrmContact", "PublicationProvider"]
