from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """A structured pipeline failure: kind, user-facing message, stage name."""

    kind = "pipeline_error"
    status_code = 500

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "error_code": self.kind}
        if self.stage:
            payload["stage"] = self.stage
        return payload


class NotFoundError(PipelineError):
    kind = "not_found"
    status_code = 404


class UnavailableError(PipelineError):
    kind = "unavailable"
    status_code = 502


class MalformedResponseError(PipelineError):
    kind = "malformed_response"
    status_code = 502


class QuotaExceededError(PipelineError):
    kind = "quota_exceeded"
    status_code = 403

    def __init__(self, count: int, limit: int, stage: str | None = "peers"):
        super().__init__("Free limit reached", stage=stage)
        self.count = count
        self.limit = limit

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"paywall": True, "count": self.count, "limit": self.limit})
        return payload
