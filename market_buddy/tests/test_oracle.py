import json

import pytest
import requests

from market_buddy.errors import OracleResponseMalformed, OracleUnavailable
from market_buddy.oracle import AzureOpenAIClient, decode_json_object, parse_verdict, unwrap_code_fence


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or json.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _client():
    return AzureOpenAIClient(
        endpoint="https://example.openai.azure.com/",
        api_key="secret",
        deployment="gpt-4",
        timeout_s=5,
    )


def _chat_body(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_unwrap_code_fence():
    assert unwrap_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert unwrap_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'
    assert unwrap_code_fence('  {"a": 1} ') == '{"a": 1}'


def test_decode_json_object_extracts_embedded_object():
    assert decode_json_object('Sure! {"confidence": 0.5} hope it helps') == {"confidence": 0.5}


@pytest.mark.parametrize("raw", [None, "", "   ", "no json here", "[1, 2]", "{broken"])
def test_decode_json_object_rejects_garbage(raw):
    with pytest.raises(OracleResponseMalformed):
        decode_json_object(raw)


def test_parse_verdict_indices():
    v = parse_verdict('{"selectedIndices": [2, 1], "confidence": 0.9, "reasoning": "both fit"}')
    assert v.selected_indices == (2, 1)
    assert v.confidence == 0.9
    assert v.reasoning == "both fit"


def test_parse_verdict_legacy_single_index():
    assert parse_verdict('{"selectedIndex": 3, "confidence": 0.7}').selected_indices == (3,)
    # zero means none of the candidates
    assert parse_verdict('{"selectedIndex": 0, "confidence": 0}').selected_indices == ()


def test_parse_verdict_clamps_confidence():
    assert parse_verdict('{"selectedIndices": [], "confidence": 1.7}').confidence == 1.0
    assert parse_verdict('{"selectedIndices": [], "confidence": -2}').confidence == 0.0


@pytest.mark.parametrize(
    "raw",
    [
        '{"confidence": 0.9}',
        '{"selectedIndices": "1", "confidence": 0.9}',
        '{"selectedIndices": [1]}',
        '{"selectedIndex": "two", "confidence": 0.9}',
        '{"selectedIndices": [1], "confidence": "high"}',
    ],
)
def test_parse_verdict_rejects_bad_shapes(raw):
    with pytest.raises(OracleResponseMalformed):
        parse_verdict(raw)


def test_select_best_posts_chat_completion(monkeypatch):
    seen = {}

    def fake_post(url, params=None, json=None, headers=None, timeout=None):
        seen.update(url=url, params=params, body=json, headers=headers, timeout=timeout)
        return FakeResponse(payload=_chat_body('```json\n{"selectedIndices": [1], "confidence": 0.95}\n```'))

    monkeypatch.setattr(requests, "post", fake_post)
    verdict = _client().select_best("Original item: 1 יחידה חלב")

    assert verdict.selected_indices == (1,)
    assert seen["url"] == "https://example.openai.azure.com/openai/deployments/gpt-4/chat/completions"
    assert seen["params"] == {"api-version": "2023-05-15"}
    assert seen["headers"]["api-key"] == "secret"
    assert seen["timeout"] == 5
    assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]
    assert seen["body"]["messages"][1]["content"] == "Original item: 1 יחידה חלב"


def test_http_error_is_unavailable(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(500, text="server error"))
    with pytest.raises(OracleUnavailable):
        _client().chat("system", "user")


def test_timeout_is_unavailable(monkeypatch):
    def fake_post(*a, **kw):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(requests, "post", fake_post)
    with pytest.raises(OracleUnavailable):
        _client().select_best("prompt")


def test_unexpected_body_is_malformed(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(payload={"choices": []}))
    with pytest.raises(OracleResponseMalformed):
        _client().chat("system", "user")


def test_parse_free_text_returns_raw_content(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(payload=_chat_body('{"items": []}')))
    assert _client().parse_free_text("חלב", "instructions") == '{"items": []}'
