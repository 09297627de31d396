"""Shared error types for enrich_core."""

from __future__ import annotations


class EnrichCoreError(Exception):
    """Base exception for enrich_core failures."""


class UpstreamError(EnrichCoreError):
    """Raised when the remote text-generation dependency fails."""

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        """Initialize upstream failure metadata.

        Args:
            message: Human-readable error message.
            http_status: Optional HTTP status observed from the provider.
            response_body: Optional response payload text.
        """
        super().__init__(message)
        self.http_status = http_status
        self.response_body = response_body


class CallCancelledError(EnrichCoreError):
    """Raised when the caller's stop event interrupts a call."""


class ResponseError(EnrichCoreError, ValueError):
    """Base exception for unusable provider responses."""


class MalformedResponseError(ResponseError):
    """Raised when recovered text is not valid JSON for the requested shape.

    Attributes:
        shape: Name of the record shape being parsed.
        payload: The JSON text recovered from the raw response.
    """

    def __init__(self, shape: str, payload: str, detail: str) -> None:
        self.shape = shape
        self.payload = payload
        super().__init__(f"failed to parse {shape} JSON: {detail}")


class RecordValidationError(ResponseError):
    """Raised when a whole-record rule rejects a parsed response."""

    def __init__(self, field: str, value: object, message: str) -> None:
        self.field = field
        self.value = value
        super().__init__(message)
