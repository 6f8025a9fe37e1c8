# leadsync/remote/retry.py
"""
Retrying JSON request helper shared by the verification and CRM clients.

Flow per attempt:
  1) send the request through the caller's httpx.Client
  2) 2xx (+ payload_ok(decoded) when given)  -> return decoded JSON
     2xx but payload_ok fails                 -> PermanentRemoteError
     transport error / 5xx / 429*             -> sleep base**attempt, retry
     any other status                         -> PermanentRemoteError
  3) out of attempts                          -> RetriesExhaustedError

  * 429 only when the policy says the provider rate-limits.

Transport failures are recorded with code 0. Calls block while backing off;
stages are single-threaded batch jobs.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from leadsync.exceptions import PermanentRemoteError, RetriesExhaustedError

log = logging.getLogger(__name__)

TRANSPORT_ERROR_CODE = 0
RATE_LIMITED = 429


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    retry_on_rate_limit: bool = True
    backoff_base: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return float(self.backoff_base**attempt)


def _decode(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {"data": data}
    return data


def _is_transient(code: int, policy: RetryPolicy) -> bool:
    if code == TRANSPORT_ERROR_CODE or code >= 500:
        return True
    return code == RATE_LIMITED and policy.retry_on_rate_limit


def request_json(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    policy: RetryPolicy,
    provider: str,
    payload_ok: Callable[[dict[str, Any]], bool] | None = None,
    payload_error: Callable[[dict[str, Any]], str] | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Perform `method url` with bounded retries and return the decoded JSON body.

    kwargs are passed through to client.request (params=, json=, ...).
    """
    attempts = max(1, int(policy.max_attempts))
    last_code: int = TRANSPORT_ERROR_CODE
    last_error = ""

    for attempt in range(1, attempts + 1):
        try:
            resp = client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            last_code = TRANSPORT_ERROR_CODE
            last_error = f"{type(exc).__name__}: {exc}"
        else:
            code = resp.status_code
            if 200 <= code < 300:
                data = _decode(resp)
                if payload_ok is not None and not payload_ok(data):
                    message = payload_error(data) if payload_error else "unexpected response"
                    raise PermanentRemoteError(
                        f"{provider} error: {message}", provider=provider, code=code
                    )
                return data

            last_code = code
            last_error = f"HTTP {code}"
            if not _is_transient(code, policy):
                raise PermanentRemoteError(
                    f"{provider} HTTP {code} on {method} {url}",
                    provider=provider,
                    code=code,
                )

        if attempt < attempts:
            delay = policy.delay_for(attempt)
            log.warning(
                "%s transient failure (%s) on %s %s; attempt %d/%d, retrying in %.0fs",
                provider,
                last_error,
                method,
                url,
                attempt,
                attempts,
                delay,
            )
            time.sleep(delay)

    raise RetriesExhaustedError(
        f"{provider} unavailable after {attempts} attempts. Last error: {last_error}",
        provider=provider,
        code=last_code,
        attempts=attempts,
    )


__all__ = [
    "RetryPolicy",
    "request_json",
    "TRANSPORT_ERROR_CODE",
]
