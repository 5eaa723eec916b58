"""
Amazon Polly synthesis backend.

Credentials come from the standard boto3 chain (environment, shared
credentials file, instance role). The region is synthesis.region,
overridable with AWS_REGION / AWS_DEFAULT_REGION.

Settings:
    synthesis:
      backend: polly
      region: us-east-1
      engine: neural     # passed as Engine=, and used to filter /voices
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from speech_gateway.core.config import Settings
from speech_gateway.core.logging import debug, fail, verbose
from speech_gateway.services.errors import UpstreamError
from speech_gateway.tts.synthesizer import BaseSynthesizer
from speech_gateway.utils.timeit import timeit


def _error_code(exc: Exception) -> Optional[str]:
    """AWS error code of a ClientError, e.g. "ThrottlingException"."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


class PollySynthesizer(BaseSynthesizer):
    """
    Synthesis through boto3's Polly client.

    A client can be injected for tests; otherwise one is created for the
    configured region.
    """
    name = "polly"

    def __init__(self, settings: Settings, client: Any = None):
        super().__init__(settings)
        cfg = settings.get_gateway_config().synthesis
        self.region = cfg.region
        self.engine = cfg.engine
        self._client = client if client is not None else boto3.client("polly", region_name=self.region)

    def synthesize_text(
        self,
        text: str,
        voice_id: str,
        output_format: str,
        segment_index: Optional[int] = None,
    ) -> bytes:
        with timeit("polly_synthesize") as t:
            try:
                response = self._client.synthesize_speech(
                    Text=text,
                    VoiceId=voice_id,
                    OutputFormat=output_format,
                    Engine=self.engine,
                )
            except (BotoCoreError, ClientError) as exc:
                fail(
                    self.logger, "synthesize_failed",
                    segment_index=segment_index,
                    voice=voice_id,
                    aws_code=_error_code(exc),
                    error=str(exc),
                )
                details: Dict[str, Any] = {"voice_id": voice_id}
                if _error_code(exc):
                    details["aws_code"] = _error_code(exc)
                raise UpstreamError(
                    "Failed to synthesize speech",
                    segment_index=segment_index,
                    details=details,
                ) from exc

            stream = response.get("AudioStream")
            if stream is None:
                fail(self.logger, "synthesize_no_audio", segment_index=segment_index, voice=voice_id)
                raise UpstreamError(
                    "Invalid audio stream received",
                    segment_index=segment_index,
                    details={"voice_id": voice_id},
                )
            try:
                audio = stream.read()
            finally:
                stream.close()

        verbose(
            self.logger, "segment_synthesized",
            segment_index=segment_index,
            chars=len(text),
            bytes=len(audio),
            seconds=round(t.seconds, 4),
        )
        return audio

    def describe_voices(self) -> List[Dict[str, Any]]:
        """
        All voices that support the configured engine.

        Follows NextToken until the catalog is exhausted.
        """
        voices: List[Dict[str, Any]] = []
        kwargs: Dict[str, Any] = {}
        try:
            while True:
                response = self._client.describe_voices(**kwargs)
                voices.extend(response.get("Voices", []))
                token = response.get("NextToken")
                if not token:
                    break
                kwargs["NextToken"] = token
        except (BotoCoreError, ClientError) as exc:
            fail(self.logger, "describe_voices_failed", aws_code=_error_code(exc), error=str(exc))
            raise UpstreamError("Failed to fetch voices", details={"operation": "describe_voices"}) from exc

        usable = [v for v in voices if self.engine in v.get("SupportedEngines", [])]
        debug(self.logger, "voices_listed", total=len(voices), engine=self.engine, usable=len(usable))
        return usable
