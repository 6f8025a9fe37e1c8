# leadsync/verify/runner.py
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from leadsync.config import StageConfig
from leadsync.logs import BatchLogger, new_batch_id
from leadsync.store import ContactStore
from leadsync.verify.classify import classify_locally
from leadsync.verify.jobs import VerificationOrchestrator

log = logging.getLogger(__name__)


@dataclass
class VerifySummary:
    batch_id: str
    processed: int = 0
    local: int = 0
    remote: int = 0
    results: dict[str, int] = field(default_factory=dict)


def run_verify(
    store: ContactStore,
    orchestrator: VerificationOrchestrator,
    stage: StageConfig,
    *,
    batch_id: str | None = None,
) -> VerifySummary:
    """
    Verify one batch of pending contacts.

    Local classification is written first so those contacts stay resolved
    even if the remote job later fails. Remote results are marked one row
    at a time.
    """
    batch_id = batch_id or new_batch_id("verify")
    blog = BatchLogger(log, batch_id)
    summary = VerifySummary(batch_id=batch_id)

    emails = store.fetch_pending(stage.batch_size, stage.order_by, stage.order_dir, stage.where)
    if not emails:
        blog.info("no emails pending verification")
        return summary

    summary.processed = len(emails)
    blog.info("verification started", context={"total": len(emails)})

    counts: Counter[str] = Counter()
    remote_emails: list[str] = []

    local_counts: Counter[str] = Counter()
    for email in emails:
        status = classify_locally(email)
        if status is None:
            remote_emails.append(email)
            continue
        store.mark_verified(email, status)
        local_counts[status] += 1

    summary.local = sum(local_counts.values())
    counts.update(local_counts)
    if local_counts:
        blog.info(
            "local classification finished",
            context={"resolved": summary.local, "results": dict(local_counts)},
        )

    if remote_emails:
        summary.remote = len(remote_emails)
        resolved = orchestrator.resolve(remote_emails, batch_id=batch_id)
        for email in remote_emails:
            status = resolved[email]
            store.mark_verified(email, status)
            counts[status] += 1

    summary.results = dict(counts)
    blog.info(
        "verification finished",
        context={
            "processed": summary.processed,
            "local": summary.local,
            "remote": summary.remote,
            "results": summary.results,
        },
    )
    return summary


__all__ = ["VerifySummary", "run_verify"]
