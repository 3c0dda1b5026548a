"""Exceptions raised while talking to Jira and building reports."""

from typing import Optional


class AnalyzerError(Exception):
    """Base error carrying an HTTP status and optional upstream details."""

    def __init__(self, message: str, status_code: int = 500,
                 details=None, **metadata):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details
        self.metadata = metadata

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def __str__(self):
        if not self.metadata:
            return self.message
        metadata_info = ", ".join(f"{k}={v}" for k, v in self.metadata.items())
        return f"{self.message} ({metadata_info})"


class AuthenticationMissingError(AnalyzerError):
    """Raised when Jira credentials are absent from the request."""

    def __init__(self, message: str = "Missing Jira credentials in headers"):
        super().__init__(message, status_code=401)


class UpstreamTransportError(AnalyzerError):
    """Raised when a request to Jira fails at the network or HTTP level."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details=None, **metadata):
        super().__init__(message, status_code=status_code or 500,
                         details=details, **metadata)


class TraversalError(UpstreamTransportError):
    """Raised when a page fetch fails; aborts the whole traversal.

    Carries ``offset`` (offset contract) or ``cursor`` (token contract) of
    the page that failed.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details=None, offset: Optional[int] = None,
                 cursor: Optional[str] = None):
        super().__init__(message, status_code=status_code, details=details,
                         offset=offset, cursor=cursor)
        self.offset = offset
        self.cursor = cursor


class FetchCancelledError(UpstreamTransportError):
    """Raised when per-item fetches did not finish before the batch deadline."""

    def __init__(self, message: str = "Timed out waiting for issue changelogs",
                 pending: int = 0):
        super().__init__(message, status_code=504, pending=pending)
        self.pending = pending
