"""
NeverBounce bulk-jobs client (v4 API).

Endpoints used:

    POST {base}/jobs/create    -> {"status": "success", "job_id": 123}
    GET  {base}/jobs/status    -> {"status": "success", "job_status": "running", ...}
    GET  {base}/jobs/results   -> {"status": "success", "total_pages": 2,
                                   "results": [{"data": {"email": ...},
                                                "verification": {"result": "valid"}}]}

Every response wraps its own "status" field; anything but "success" is a
permanent failure even on HTTP 200. Transport failures, 5xx and 429 are
retried by leadsync.remote.retry.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from leadsync.config import NeverBounceSettings
from leadsync.remote.retry import RetryPolicy, request_json
from leadsync.verify.jobs import (
    JOB_COMPLETE,
    JOB_FAILED,
    JOB_RUNNING,
    JobStatus,
    ResultItem,
    ResultPage,
)

PROVIDER = "NeverBounce"


def _payload_ok(data: dict[str, Any]) -> bool:
    return data.get("status") == "success"


def _payload_error(data: dict[str, Any]) -> str:
    return str(data.get("message") or data.get("status") or "unexpected response")


def _map_job_status(raw: Any) -> str:
    s = str(raw or "").strip().lower()
    if s == "complete":
        return JOB_COMPLETE
    if s == "failed":
        return JOB_FAILED
    # queued / parsing / waiting / running / uploading / under_review ...
    return JOB_RUNNING


class NeverBounceClient:
    """
    Small wrapper around httpx implementing the VerificationProvider protocol.

    The API key travels as a query/body parameter, as NeverBounce expects.
    """

    def __init__(
        self,
        settings: NeverBounceSettings,
        *,
        client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        self.policy = RetryPolicy(max_attempts=settings.max_attempts, retry_on_rate_limit=True)
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(settings.timeout_s),
            headers={"Accept": "application/json"},
        )

    def __enter__(self) -> NeverBounceClient:
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
            f"{self.settings.base_url}/{path}",
            policy=self.policy,
            provider=PROVIDER,
            payload_ok=_payload_ok,
            payload_error=_payload_error,
            **kwargs,
        )

    # ---- VerificationProvider ---------------------------------------------------

    def submit(self, emails: Sequence[str]) -> str | None:
        data = self._call(
            "POST",
            "jobs/create",
            json={
                "key": self.settings.api_key,
                "input_location": "supplied",
                "auto_parse": 1,
                "auto_start": 1,
                "input": [{"email": e} for e in emails],
            },
        )
        job_id = data.get("job_id")
        return str(job_id) if job_id not in (None, "") else None

    def status(self, job_id: str) -> JobStatus:
        data = self._call(
            "GET",
            "jobs/status",
            params={"key": self.settings.api_key, "job_id": job_id},
        )
        raw_state = data.get("job_status")
        return JobStatus(
            state=_map_job_status(raw_state),
            raw_state=str(raw_state or ""),
            reason=data.get("failure_reason"),
        )

    def results(self, job_id: str, page: int) -> ResultPage:
        data = self._call(
            "GET",
            "jobs/results",
            params={"key": self.settings.api_key, "job_id": job_id, "page": page},
        )
        items: list[ResultItem] = []
        for raw in data.get("results") or []:
            if not isinstance(raw, dict):
                items.append(ResultItem(email=None, result=None, raw={"item": raw}))
                continue
            email = (raw.get("data") or {}).get("email")
            result = (raw.get("verification") or {}).get("result")
            items.append(
                ResultItem(
                    email=str(email) if email else None,
                    result=str(result) if result else None,
                    raw=raw,
                )
            )
        try:
            total_pages = int(data.get("total_pages") or 1)
        except (TypeError, ValueError):
            total_pages = 1
        return ResultPage(items=items, total_pages=total_pages)


__all__ = ["NeverBounceClient", "PROVIDER"]
