from leadsync.remote.retry import RetryPolicy, request_json

__all__ = ["RetryPolicy", "request_json"]
