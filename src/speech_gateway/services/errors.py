"""
Error taxonomy for the speech pipeline.

    GatewayError        base class, carries an ErrorCode and details
    ├── ValidationError bad or missing input (HTTP 400)
    ├── UpstreamError   synthesis service failure (HTTP 500), knows the segment
    └── MergeError      audio merge failure (HTTP 500)

Every error serializes to the JSON payload returned by the API:

    {"error": "<message>", "code": "<ERROR_CODE>", "details": {...}}
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Machine-readable error codes returned in API error payloads."""
    INVALID_INPUT = "INVALID_INPUT"
    UPSTREAM_FAILED = "UPSTREAM_FAILED"
    MERGE_FAILED = "MERGE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# HTTP status per error code
STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UPSTREAM_FAILED: 500,
    ErrorCode.MERGE_FAILED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


class GatewayError(Exception):
    """
    Base exception for pipeline errors.

    Attributes:
        message: Human-readable error message, returned as ``error``.
        code: Error code from ErrorCode.
        details: Optional diagnostic context.
    """

    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return STATUS_MAP.get(self.code, 500)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(GatewayError):
    """User-correctable input problem."""

    def __init__(self, message: str, reason: str = "VALIDATION_ERROR", details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        merged = {"reason": reason}
        merged.update(details or {})
        super().__init__(message, ErrorCode.INVALID_INPUT, merged)


class UpstreamError(GatewayError):
    """
    The synthesis service failed.

    segment_index is None for calls not tied to a segment (voice listing,
    single-call synthesis).
    """

    def __init__(self, message: str, segment_index: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        self.segment_index = segment_index
        merged: Dict[str, Any] = dict(details or {})
        if segment_index is not None:
            merged["segment_index"] = segment_index
        super().__init__(message, ErrorCode.UPSTREAM_FAILED, merged)


class MergeError(GatewayError):
    """The merge backend could not produce the output artifact."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.MERGE_FAILED, details)
