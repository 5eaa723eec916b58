"""Tests for the Polly backend with a mocked boto3 client."""
from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from speech_gateway.core.config import Settings
from speech_gateway.services.errors import ErrorCode, UpstreamError
from speech_gateway.tts.polly import PollySynthesizer
from speech_gateway.tts.segmenter import TextSegment
from speech_gateway.tts.synthesizer import get_synthesizer, reset_synthesizer


@pytest.fixture
def client():
    c = MagicMock()
    c.synthesize_speech.return_value = {"AudioStream": io.BytesIO(b"ID3-audio")}
    return c


@pytest.fixture
def polly(client):
    return PollySynthesizer(Settings(raw={"synthesis": {"engine": "neural"}}), client=client)


def _client_error(code="ThrottlingException"):
    return ClientError({"Error": {"Code": code, "Message": "slow down"}}, "SynthesizeSpeech")


class TestSynthesize:

    def test_synthesize_segment(self, polly, client):
        artifact = polly.synthesize(TextSegment(index=2, content="Hello"), "Joanna", "mp3")

        assert artifact.segment_index == 2
        assert artifact.audio_bytes == b"ID3-audio"
        client.synthesize_speech.assert_called_once_with(
            Text="Hello", VoiceId="Joanna", OutputFormat="mp3", Engine="neural",
        )

    def test_synthesize_text(self, polly):
        assert polly.synthesize_text("Hello", "Matthew", "ogg_vorbis") == b"ID3-audio"

    def test_client_error_carries_segment_index(self, polly, client):
        client.synthesize_speech.side_effect = _client_error()

        with pytest.raises(UpstreamError) as exc_info:
            polly.synthesize(TextSegment(index=3, content="Hello"), "Joanna", "mp3")

        err = exc_info.value
        assert err.segment_index == 3
        assert err.code == ErrorCode.UPSTREAM_FAILED
        assert err.details["segment_index"] == 3
        assert err.details["aws_code"] == "ThrottlingException"
        assert err.status_code == 500

    def test_network_error(self, polly, client):
        client.synthesize_speech.side_effect = EndpointConnectionError(endpoint_url="https://polly")
        with pytest.raises(UpstreamError):
            polly.synthesize_text("Hello", "Joanna", "mp3")

    def test_missing_audio_stream(self, polly, client):
        client.synthesize_speech.return_value = {"ContentType": "audio/mpeg"}
        with pytest.raises(UpstreamError, match="Invalid audio stream"):
            polly.synthesize(TextSegment(index=0, content="Hello"), "Joanna", "mp3")


class TestDescribeVoices:

    def test_filters_by_engine_and_follows_pages(self, polly, client):
        client.describe_voices.side_effect = [
            {
                "Voices": [
                    {"Id": "Joanna", "SupportedEngines": ["neural", "standard"]},
                    {"Id": "Ivy", "SupportedEngines": ["standard"]},
                ],
                "NextToken": "page-2",
            },
            {"Voices": [{"Id": "Matthew", "SupportedEngines": ["neural"]}]},
        ]

        voices = polly.describe_voices()

        assert [v["Id"] for v in voices] == ["Joanna", "Matthew"]
        assert client.describe_voices.call_count == 2
        assert client.describe_voices.call_args_list[1].kwargs == {"NextToken": "page-2"}

    def test_voice_without_engines_is_skipped(self, polly, client):
        client.describe_voices.return_value = {"Voices": [{"Id": "Odd"}]}
        assert polly.describe_voices() == []

    def test_failure(self, polly, client):
        client.describe_voices.side_effect = _client_error("AccessDeniedException")
        with pytest.raises(UpstreamError, match="Failed to fetch voices"):
            polly.describe_voices()


class TestFactory:

    def setup_method(self):
        reset_synthesizer()

    def teardown_method(self):
        reset_synthesizer()

    def test_creates_polly_client_for_region(self, monkeypatch):
        monkeypatch.delenv("SPEECH_GW_SYNTH_BACKEND", raising=False)
        with patch("speech_gateway.tts.polly.boto3.client") as make_client:
            synth = get_synthesizer(Settings(raw={"synthesis": {"region": "eu-west-1"}}))

        assert isinstance(synth, PollySynthesizer)
        make_client.assert_called_once_with("polly", region_name="eu-west-1")

    def test_singleton(self, monkeypatch):
        monkeypatch.delenv("SPEECH_GW_SYNTH_BACKEND", raising=False)
        with patch("speech_gateway.tts.polly.boto3.client"):
            settings = Settings(raw={})
            assert get_synthesizer(settings) is get_synthesizer(settings)

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("SPEECH_GW_SYNTH_BACKEND", "espeak")
        with pytest.raises(ValueError, match="espeak"):
            get_synthesizer(Settings(raw={}))
