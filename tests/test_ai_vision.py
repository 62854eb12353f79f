from types import SimpleNamespace

import pytest

from utils.ai_vision import (
    AIVisionError,
    DisabledVisionClassifier,
    GeminiVisionClassifier,
    VisionClassifier,
    VisionResult,
    build_vision_classifier,
    parse_vision_response,
)


class StubModels:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def stub_client(text=None, error=None):
    return SimpleNamespace(models=StubModels(text=text, error=error))


def test_parse_plain_json():
    result = parse_vision_response('{"issueType": "garbage", "priority": "high", "description": "Overflowing bin."}')
    assert result == VisionResult(issue_type="garbage", priority="high", description="Overflowing bin.")


def test_parse_fenced_json():
    raw = '```json\n{"issueType": "pothole", "priority": "low", "description": "Small crack."}\n```'
    assert parse_vision_response(raw).issue_type == "pothole"


def test_parse_json_surrounded_by_prose():
    raw = 'Sure! Here it is: {"issueType": "streetlight", "priority": "medium", "description": ""} Hope it helps.'
    result = parse_vision_response(raw)
    assert result.issue_type == "streetlight"
    assert result.description == ""


def test_parse_normalizes_issue_type_spelling():
    assert parse_vision_response('{"issueType": "Water Leakage"}').issue_type == "water-leakage"
    assert parse_vision_response('{"issue_type": "dirty_toilet"}').issue_type == "dirty-toilet"


def test_unknown_priority_falls_back_to_medium():
    assert parse_vision_response('{"issueType": "garbage", "priority": "urgent"}').priority == "medium"
    assert parse_vision_response('{"issueType": "garbage", "priority": "critical"}').priority == "critical"


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "not json at all", '["pothole"]', '{"issueType": "volcano", "priority": "high"}'],
)
def test_unusable_responses_raise(raw):
    with pytest.raises(AIVisionError):
        parse_vision_response(raw)


def test_classifier_without_key_skips_remote_call():
    classifier = GeminiVisionClassifier(api_key="")
    assert classifier.classify(b"img", "image/png") is None
    assert classifier._client is None


def test_classifier_returns_parsed_result():
    client = stub_client(text='{"issueType": "pothole", "priority": "high", "description": "Deep pothole."}')
    classifier = GeminiVisionClassifier(api_key="key", model_name="gemini-test", client=client)
    result = classifier.classify(b"img", "image/png")
    assert result == VisionResult("pothole", "high", "Deep pothole.")
    assert client.models.calls[0]["model"] == "gemini-test"


def test_classifier_failure_is_reported_as_unavailable():
    classifier = GeminiVisionClassifier(api_key="key", client=stub_client(error=RuntimeError("quota")))
    assert classifier.classify(b"img", "image/png") is None
    with pytest.raises(AIVisionError):
        classifier.analyze(b"img", "image/png")


def test_classifier_invalid_output_is_unavailable():
    classifier = GeminiVisionClassifier(api_key="key", client=stub_client(text='{"issueType": "volcano"}'))
    assert classifier.classify(b"img", "image/png") is None


def test_build_vision_classifier():
    assert isinstance(build_vision_classifier({}), DisabledVisionClassifier)
    assert DisabledVisionClassifier().classify(b"img", "image/png") is None
    built = build_vision_classifier({"GEMINI_API_KEY": "key", "GEMINI_VISION_MODEL": "m", "VISION_TIMEOUT_SECONDS": 5})
    assert isinstance(built, GeminiVisionClassifier)
    assert built.model_name == "m"
    assert built.timeout_seconds == 5.0


class BlockedResponse:
    @property
    def text(self):
        raise ValueError("response was blocked by safety filters")


def test_unreadable_response_text_is_unavailable():
    client = SimpleNamespace(models=SimpleNamespace(generate_content=lambda **kwargs: BlockedResponse()))
    classifier = GeminiVisionClassifier(api_key="key", client=client)
    assert classifier.classify(b"img", "image/png") is None
    with pytest.raises(AIVisionError):
        classifier.analyze(b"img", "image/png")


def test_vision_classifier_is_abstract():
    with pytest.raises(TypeError):
        VisionClassifier()
