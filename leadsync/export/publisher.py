# leadsync/export/publisher.py
"""
Export stage: push verified, changed contacts to the CRM.

Per contact:

  - payload = email + every data field that is not NULL / not ''
    (bookkeeping columns are never sent)
  - search the CRM by email, keep only the exact (case-insensitive) match
  - found     -> partial update (omitted fields stay as they are)
    not found -> create
  - success   -> mark_exported; failure -> log, leave untouched, continue

A failed contact keeps its old last_export, so it is picked up again by
the next run. Delivery is at-least-once; create/update are idempotent on
the CRM side by virtue of the lookup.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from leadsync.config import StageConfig
from leadsync.exceptions import RemoteError
from leadsync.export.provider import CrmContact, PublicationProvider
from leadsync.logs import BatchLogger, new_batch_id
from leadsync.schema import EMAIL_FIELD, RESERVED_FIELDS
from leadsync.store import ContactStore

log = logging.getLogger(__name__)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"


@dataclass
class ExportSummary:
    batch_id: str
    synced: int = 0
    failed: int = 0
    created: int = 0
    updated: int = 0


def build_payload(row: Mapping[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {EMAIL_FIELD: row[EMAIL_FIELD]}
    for name, value in row.items():
        if name in RESERVED_FIELDS:
            continue
        if value is None or value == "":
            continue
        payload[name] = value
    return payload


def find_existing(candidates: list[CrmContact], email: str) -> CrmContact | None:
    target = email.strip().lower()
    for contact in candidates:
        if contact.email.strip().lower() == target:
            return contact
    return None


def sync_contact(provider: PublicationProvider, row: Mapping[str, Any]) -> str:
    email = str(row[EMAIL_FIELD])
    payload = build_payload(row)

    existing = find_existing(provider.search(email), email)
    if existing is not None:
        provider.update(existing.id, payload)
        return ACTION_UPDATED
    provider.create(payload)
    return ACTION_CREATED


def run_export(
    store: ContactStore,
    provider: PublicationProvider,
    stage: StageConfig,
    *,
    batch_id: str | None = None,
) -> ExportSummary:
    batch_id = batch_id or new_batch_id("export")
    blog = BatchLogger(log, batch_id)
    summary = ExportSummary(batch_id=batch_id)

    rows = store.fetch_eligible_for_export(
        stage.batch_size, stage.order_by, stage.order_dir, stage.where
    )
    if not rows:
        blog.info("no contacts to export")
        return summary

    blog.info("export started", context={"total": len(rows)})

    for row in rows:
        email = row[EMAIL_FIELD]
        try:
            action = sync_contact(provider, row)
        except RemoteError as exc:
            # last_export stays as is: retried on the next run.
            summary.failed += 1
            blog.warning(
                f"export failed for {email}",
                context={"error": str(exc), "code": exc.code},
            )
            continue
        except Exception as exc:  # noqa: BLE001 - one contact must not stop the others
            summary.failed += 1
            blog.error(
                f"export failed for {email}",
                context={"error": f"{type(exc).__name__}: {exc}"},
                exc_info=True,
            )
            continue

        store.mark_exported(email)
        summary.synced += 1
        if action == ACTION_CREATED:
            summary.created += 1
        else:
            summary.updated += 1

    blog.info(
        "export finished",
        context={
            "synced": summary.synced,
            "failed": summary.failed,
            "created": summary.created,
            "updated": summary.updated,
        },
    )
    return summary


__all__ = [
    "ExportSummary",
    "build_payload",
    "find_existing",
    "run_export",
    "sync_contact",
]
