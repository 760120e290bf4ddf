from __future__ import annotations

from typing import Any, Dict, Optional


class InsigneError(Exception):
    """Base for failures that map onto a structured error response.

    Subclasses fix the ``code`` and HTTP ``status_code``; ``details`` carries
    whatever an operator needs to diagnose the failure (provider bodies, ids).
    """

    code = "insigne_error"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailed(InsigneError):
    code = "validation_failed"
    status_code = 400


class NotFound(InsigneError):
    code = "not_found"
    status_code = 404


class PreconditionFailed(InsigneError):
    code = "precondition_failed"
    status_code = 409


class UpstreamFailure(InsigneError):
    code = "upstream_failure"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_status: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {"provider": provider}
        if provider_status is not None:
            details["provider_status_code"] = provider_status
        if body is not None:
            details["provider_body"] = body
        super().__init__(message, details=details)
        self.provider = provider
