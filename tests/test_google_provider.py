"""
Tests for providers/google_provider.py.

Covers:
  - parse_google_response(): labels, colours, faces, safe-search, confidence fallback
  - face-derived sentiment
  - GoogleVisionProvider.analyse(): request shape, HTTP error, per-image error block,
    network failure, timeout, missing key
  - test_connection(): key presence only
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from errors import BackendError, ConfigurationError
from image_io import ImagePayload
from providers.base import AnalysisOptions, ImageMetadata
from providers.google_provider import (
    ANNOTATE_URL, FEATURES, GoogleVisionProvider, parse_google_response,
)

META = ImageMetadata(width=10, height=10, format="jpg", size_bytes=100)

SAMPLE_RESPONSE = {
    "labelAnnotations": [
        {"description": "Cat", "score": 0.97},
        {"description": "Whiskers", "score": 0.91},
    ],
    "textAnnotations": [{"description": "MEOW"}, {"description": "ME"}],
    "logoAnnotations": [{"description": "Acme"}],
    "faceAnnotations": [
        {
            "joyLikelihood": "VERY_LIKELY",
            "sorrowLikelihood": "VERY_UNLIKELY",
            "angerLikelihood": "UNLIKELY",
            "surpriseLikelihood": "POSSIBLE",
        }
    ],
    "safeSearchAnnotation": {"adult": "VERY_UNLIKELY", "violence": "UNLIKELY"},
    "imagePropertiesAnnotation": {
        "dominantColors": {
            "colors": [
                {"color": {"red": 250, "green": 128, "blue": 64}, "score": 0.6},
                {"color": {"green": 10}, "score": 0.2},
            ]
        }
    },
}


def payload() -> ImagePayload:
    return ImagePayload(data=b"\xff\xd8\xffjpegdata", format="jpg", size_bytes=11)


def fake_session(status=200, body=None, text="error text"):
    """aiohttp ClientSession double whose post() returns one canned response."""
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=body if body is not None else {"responses": [SAMPLE_RESPONSE]})
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=resp)
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    return session


# ── Parser ────────────────────────────────────────────────────────────────────

class TestParseGoogleResponse:
    def test_labels_become_objects_with_scores(self):
        a = parse_google_response(SAMPLE_RESPONSE, META)
        assert a.objects == ["Cat", "Whiskers"]
        assert a.labels[0].score == 0.97

    def test_confidence_is_top_label_score(self):
        assert parse_google_response(SAMPLE_RESPONSE, META).confidence == 0.97

    def test_confidence_defaults_without_labels(self):
        assert parse_google_response({}, META).confidence == 0.5

    def test_colors_are_rgb_strings(self):
        a = parse_google_response(SAMPLE_RESPONSE, META)
        assert a.colors == ["rgb(250, 128, 64)", "rgb(0, 10, 0)"]
        assert a.color_scores[1].score == 0.2

    def test_faces_mapped_to_named_emotions(self):
        face = parse_google_response(SAMPLE_RESPONSE, META).faces[0]
        assert face.joy == "VERY_LIKELY"
        assert face.surprise == "POSSIBLE"

    def test_safe_search_passed_through(self):
        a = parse_google_response(SAMPLE_RESPONSE, META)
        assert a.safe_search == SAMPLE_RESPONSE["safeSearchAnnotation"]

    def test_text_and_logos(self):
        a = parse_google_response(SAMPLE_RESPONSE, META)
        assert a.text == "MEOW"
        assert a.texts == ["MEOW", "ME"]
        assert a.logos == ["Acme"]

    def test_empty_response(self):
        a = parse_google_response({}, META)
        assert a.objects == [] and a.colors == [] and a.text == ""
        assert a.sentiment == "neutral"

    def test_non_dict_is_backend_error(self):
        with pytest.raises(BackendError, match="Malformed"):
            parse_google_response(["nope"], META)

    def test_bad_score_is_backend_error(self):
        with pytest.raises(BackendError, match="Malformed"):
            parse_google_response({"labelAnnotations": [{"description": "x", "score": "high"}]}, META)


class TestFaceSentiment:
    def _face(self, joy="UNLIKELY", sorrow="UNLIKELY", anger="UNLIKELY"):
        return {"joyLikelihood": joy, "sorrowLikelihood": sorrow,
                "angerLikelihood": anger, "surpriseLikelihood": "UNLIKELY"}

    def test_joy_is_positive(self):
        assert parse_google_response(SAMPLE_RESPONSE, META).sentiment == "positive"

    def test_sorrow_is_negative(self):
        resp = {"faceAnnotations": [self._face(sorrow="LIKELY")]}
        assert parse_google_response(resp, META).sentiment == "negative"

    def test_joy_and_anger_is_mixed(self):
        resp = {"faceAnnotations": [self._face(joy="LIKELY"), self._face(anger="VERY_LIKELY")]}
        assert parse_google_response(resp, META).sentiment == "mixed"

    def test_unremarkable_faces_are_neutral(self):
        resp = {"faceAnnotations": [self._face()]}
        assert parse_google_response(resp, META).sentiment == "neutral"


# ── Provider ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestAnalyse:
    async def test_success(self):
        session = fake_session()
        provider = GoogleVisionProvider(api_key="g-key", timeout=7)
        with patch("providers.google_provider.aiohttp.ClientSession", return_value=session):
            result = await provider.analyse(payload(), AnalysisOptions())

        assert result.analysis.objects == ["Cat", "Whiskers"]
        assert result.analysis.metadata.size_bytes == 11
        assert result.raw_response == {"responses": [SAMPLE_RESPONSE]}

        args, kwargs = session.post.call_args
        assert args[0] == ANNOTATE_URL
        assert kwargs["params"] == {"key": "g-key"}
        request = kwargs["json"]["requests"][0]
        assert request["features"] == FEATURES
        assert request["image"]["content"] == payload().b64()
        assert kwargs["timeout"].total == 7

    async def test_missing_key_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            await GoogleVisionProvider(api_key="").analyse(payload(), AnalysisOptions())

    async def test_http_error(self):
        session = fake_session(status=403, text="API key not valid")
        with patch("providers.google_provider.aiohttp.ClientSession", return_value=session):
            with pytest.raises(BackendError, match="403") as info:
                await GoogleVisionProvider(api_key="bad").analyse(payload(), AnalysisOptions())
        assert info.value.status == 403

    async def test_error_block_in_response(self):
        body = {"responses": [{"error": {"code": 3, "message": "Bad image data."}}]}
        with patch("providers.google_provider.aiohttp.ClientSession", return_value=fake_session(body=body)):
            with pytest.raises(BackendError, match="Bad image data"):
                await GoogleVisionProvider(api_key="k").analyse(payload(), AnalysisOptions())

    async def test_string_error_block(self):
        body = {"responses": [{"error": "quota exceeded"}]}
        with patch("providers.google_provider.aiohttp.ClientSession", return_value=fake_session(body=body)):
            with pytest.raises(BackendError, match="quota exceeded") as info:
                await GoogleVisionProvider(api_key="k").analyse(payload(), AnalysisOptions())
        assert info.value.status is None

    @pytest.mark.parametrize("body", [{"responses": {"a": 1}}, {"responses": ["nope"]}])
    async def test_malformed_responses_list(self, body):
        with patch("providers.google_provider.aiohttp.ClientSession", return_value=fake_session(body=body)):
            with pytest.raises(BackendError, match="Malformed"):
                await GoogleVisionProvider(api_key="k").analyse(payload(), AnalysisOptions())

    async def test_empty_responses(self):
        with patch("providers.google_provider.aiohttp.ClientSession", return_value=fake_session(body={})):
            with pytest.raises(BackendError, match="no results"):
                await GoogleVisionProvider(api_key="k").analyse(payload(), AnalysisOptions())

    async def test_network_failure(self):
        session = fake_session()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with patch("providers.google_provider.aiohttp.ClientSession", return_value=session):
            with pytest.raises(BackendError, match="request failed"):
                await GoogleVisionProvider(api_key="k").analyse(payload(), AnalysisOptions())

    async def test_timeout(self):
        session = fake_session()
        session.post = MagicMock(side_effect=asyncio.TimeoutError())
        with patch("providers.google_provider.aiohttp.ClientSession", return_value=session):
            with pytest.raises(BackendError, match="timed out"):
                await GoogleVisionProvider(api_key="k").analyse(payload(), AnalysisOptions())


@pytest.mark.asyncio
class TestConnection:
    async def test_key_present(self):
        res = await GoogleVisionProvider(api_key="k").test_connection()
        assert res.success is True
        assert res.message == "API key present"

    async def test_key_missing(self):
        res = await GoogleVisionProvider(api_key="").test_connection()
        assert res.success is False
