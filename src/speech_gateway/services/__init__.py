"""
speech-gateway Services Layer.

Business logic between the HTTP layer and the synthesis/merge backends.

Components:
    - speech_service.py: SpeechService (request orchestrator)
    - validators.py: Input validation functions
    - errors.py: Error taxonomy shared by every layer

Only the error classes are re-exported: the tts backends import them from
here, and speech_service imports the tts backends.
"""
from .errors import ErrorCode, GatewayError, MergeError, UpstreamError, ValidationError

__all__ = [
    "GatewayError",
    "ValidationError",
    "UpstreamError",
    "MergeError",
    "ErrorCode",
]
