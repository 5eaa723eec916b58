"""Tests for the error taxonomy and its JSON payloads."""
from __future__ import annotations

import pytest

from speech_gateway.services.errors import (
    STATUS_MAP,
    ErrorCode,
    GatewayError,
    MergeError,
    UpstreamError,
    ValidationError,
)


class TestErrorCodes:

    def test_every_code_has_status(self):
        for code in (ErrorCode.INVALID_INPUT, ErrorCode.UPSTREAM_FAILED,
                     ErrorCode.MERGE_FAILED, ErrorCode.INTERNAL_ERROR):
            assert code in STATUS_MAP

    @pytest.mark.parametrize("error,status", [
        (ValidationError("bad"), 400),
        (UpstreamError("Failed to synthesize speech"), 500),
        (MergeError("Audio merging failed"), 500),
        (GatewayError("Failed to synthesize or merge speech"), 500),
    ])
    def test_status_codes(self, error, status):
        assert error.status_code == status

    def test_unknown_code_is_500(self):
        assert GatewayError("x", code="SOMETHING_NEW").status_code == 500


class TestPayloads:

    def test_minimal_payload(self):
        err = GatewayError("Failed to synthesize or merge speech")
        assert err.to_dict() == {
            "error": "Failed to synthesize or merge speech",
            "code": "INTERNAL_ERROR",
        }

    def test_validation_reason_in_details(self):
        err = ValidationError("Text is required for speech synthesis", "TEXT_REQUIRED")
        assert err.to_dict()["details"] == {"reason": "TEXT_REQUIRED"}
        assert str(err) == "Text is required for speech synthesis"

    def test_upstream_segment_index(self):
        err = UpstreamError("Failed to synthesize speech", segment_index=0, details={"voice_id": "Joanna"})
        assert err.segment_index == 0
        assert err.to_dict()["details"] == {"voice_id": "Joanna", "segment_index": 0}

    def test_upstream_without_segment(self):
        err = UpstreamError("Failed to fetch voices")
        assert err.segment_index is None
        assert "details" not in err.to_dict()

    def test_hierarchy(self):
        for cls in (ValidationError, UpstreamError, MergeError):
            assert issubclass(cls, GatewayError)
