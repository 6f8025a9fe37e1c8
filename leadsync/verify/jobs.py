# leadsync/verify/jobs.py
"""
Remote bulk-verification job orchestration.

One job per batch:

  submit(emails)              -> job id (missing id is fatal)
  poll status every N seconds -> complete | failed (fatal) | running
                                 hard wall-clock deadline (fatal)
  page through results        -> {email: status}; malformed items skipped
  fill gaps                   -> emails the provider never reported -> "unknown"

Remote concurrency is 1: one request at a time, blocking sleeps between polls.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from leadsync.exceptions import VerificationJobError, VerificationTimeoutError
from leadsync.logs import BatchLogger

log = logging.getLogger(__name__)

JOB_RUNNING = "running"
JOB_COMPLETE = "complete"
JOB_FAILED = "failed"

STATUS_UNKNOWN = "unknown"


@dataclass
class JobStatus:
    state: str  # running | complete | failed
    raw_state: str = ""
    reason: str | None = None


@dataclass
class ResultItem:
    email: str | None
    result: str | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ResultPage:
    items: list[ResultItem]
    total_pages: int = 1


class VerificationProvider(Protocol):
    def submit(self, emails: Sequence[str]) -> str | None: ...

    def status(self, job_id: str) -> JobStatus: ...

    def results(self, job_id: str, page: int) -> ResultPage: ...


class VerificationOrchestrator:
    def __init__(
        self,
        provider: VerificationProvider,
        *,
        poll_interval_s: float = 3.0,
        poll_timeout_s: float = 300.0,
    ) -> None:
        self.provider = provider
        self.poll_interval_s = poll_interval_s
        self.poll_timeout_s = poll_timeout_s

    def resolve(self, emails: Sequence[str], *, batch_id: str = "") -> dict[str, str]:
        """
        Resolve every email in `emails` to a status via one remote job.

        Emails absent from the provider's results map to "unknown".
        """
        if not emails:
            return {}
        blog = BatchLogger(log, batch_id)

        job_id = self.provider.submit(emails)
        if not job_id:
            raise VerificationJobError("Verification provider did not return a job id.")
        blog.info("verification job created", context={"job_id": job_id, "emails": len(emails)})

        self._wait_for_completion(job_id, blog)
        found = self._collect(job_id, blog)

        resolved: dict[str, str] = {}
        for email in emails:
            resolved[email] = found.get(email.strip().lower(), STATUS_UNKNOWN)
        missing = sum(1 for e in emails if e.strip().lower() not in found)
        if missing:
            blog.warning(
                "emails missing from job results marked unknown",
                context={"job_id": job_id, "missing": missing},
            )
        return resolved

    def _wait_for_completion(self, job_id: str, blog: BatchLogger) -> None:
        started = time.monotonic()
        while True:
            time.sleep(self.poll_interval_s)

            if time.monotonic() - started >= self.poll_timeout_s:
                raise VerificationTimeoutError(
                    f"Verification job {job_id} exceeded the {self.poll_timeout_s:.0f}s timeout.",
                    job_id=job_id,
                )

            status = self.provider.status(job_id)
            if status.state == JOB_FAILED:
                raise VerificationJobError(
                    f"Verification job {job_id} failed: {status.reason or 'unknown reason'}",
                    job_id=job_id,
                )
            if status.state == JOB_COMPLETE:
                blog.info("verification job complete", context={"job_id": job_id})
                return

            blog.info(
                "waiting for verification job",
                context={"job_id": job_id, "status": status.raw_state or status.state},
            )

    def _collect(self, job_id: str, blog: BatchLogger) -> dict[str, str]:
        results: dict[str, str] = {}
        page = 1
        total_pages = 1
        while page <= total_pages:
            resp = self.provider.results(job_id, page)
            for item in resp.items:
                if not item.email or not item.result:
                    blog.warning(
                        "verification result item with unexpected shape",
                        context={"job_id": job_id, "page": page, "item": item.raw},
                    )
                    continue
                results[item.email.strip().lower()] = item.result
            total_pages = max(1, int(resp.total_pages))
            page += 1
        return results


__all__ = [
    "JOB_RUNNING",
    "JOB_COMPLETE",
    "JOB_FAILED",
    "STATUS_UNKNOWN",
    "JobStatus",
    "ResultItem",
    "ResultPage",
    "VerificationProvider",
    "VerificationOrchestrator",
]
