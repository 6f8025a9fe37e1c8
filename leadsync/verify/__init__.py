from leadsync.verify.classify import classify_locally
from leadsync.verify.jobs import (
    STATUS_UNKNOWN,
    JobStatus,
    ResultItem,
    ResultPage,
    VerificationOrchestrator,
    VerificationProvider,
)
from leadsync.verify.runner import VerifySummary, run_verify

__all__ = [
    "STATUS_UNKNOWN",
    "JobStatus",
    "ResultItem",
    "ResultPage",
    "VerificationOrchestrator",
    "VerificationProvider",
    "VerifySummary",
    "classify_locally",
    "run_verify",
]
