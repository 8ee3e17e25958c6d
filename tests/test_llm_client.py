import requests
import pytest

from finanzaviz.llm_client import LLMClient
from finanzaviz.models import ChatMessage


def _make_post(recorder, body):
    def fake_post(url, **kwargs):
        recorder["url"] = url
        recorder.update(kwargs)

        class Resp:
            def raise_for_status(self):
                return None

            def json(self):
                return body

        return Resp()

    return fake_post


def _text_body(text):
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def test_generate_structured_requests_schema_constrained_json():
    called = {}
    client = LLMClient(
        model="gemini-3-flash-preview",
        api_key="key",
        timeout=7,
        post_fn=_make_post(called, _text_body("{\"ok\": true}")),
    )
    parts = [{"text": "doc"}, {"inlineData": {"mimeType": "application/pdf", "data": "AAAA"}}]
    schema = {"type": "OBJECT", "properties": {}}

    result = client.generate_structured(parts, schema)

    assert result == "{\"ok\": true}"
    assert called["url"] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-3-flash-preview:generateContent"
    )
    assert called["headers"]["x-goog-api-key"] == "key"
    assert called["timeout"] == 7
    payload = called["json"]
    assert payload["contents"] == [{"role": "user", "parts": parts}]
    assert payload["generationConfig"]["responseMimeType"] == "application/json"
    assert payload["generationConfig"]["responseSchema"] is schema


def test_chat_sends_instruction_history_and_thinking_budget():
    called = {}
    body = {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "pensando...", "thought": True},
                        {"text": "Resposta final"},
                    ]
                }
            }
        ]
    }
    client = LLMClient(
        model="gemini-3-flash-preview",
        chat_model="gemini-3-pro-preview",
        api_key="key",
        post_fn=_make_post(called, body),
    )
    history = [
        ChatMessage(role="user", text="Oi"),
        ChatMessage(role="model", text="Olá"),
        ChatMessage(role="user", text="Qual a margem?"),
    ]

    answer = client.chat("grounding", history, thinking_budget=16000)

    assert answer == "Resposta final"
    assert "gemini-3-pro-preview:generateContent" in called["url"]
    payload = called["json"]
    assert payload["systemInstruction"] == {"parts": [{"text": "grounding"}]}
    assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
    assert payload["contents"][2]["parts"] == [{"text": "Qual a margem?"}]
    assert payload["generationConfig"]["thinkingConfig"] == {"thinkingBudget": 16000}


def test_empty_candidates_raise_value_error():
    client = LLMClient(
        model="m",
        api_key="key",
        post_fn=_make_post({}, {"promptFeedback": {"blockReason": "SAFETY"}}),
    )
    with pytest.raises(ValueError, match="SAFETY"):
        client.generate_structured([{"text": "x"}], {})


def test_http_errors_are_not_retried():
    calls = {"count": 0}

    def fake_post(*_args, **_kwargs):
        calls["count"] += 1
        raise requests.exceptions.Timeout("timeout")

    client = LLMClient(model="m", api_key="key", post_fn=fake_post)
    with pytest.raises(requests.exceptions.Timeout):
        client.generate_structured([{"text": "x"}], {})
    assert calls["count"] == 1


@pytest.mark.parametrize(
    "base_url",
    [
        "https://generativelanguage.googleapis.com",
        "https://generativelanguage.googleapis.com/",
        "https://generativelanguage.googleapis.com/v1beta",
        "https://generativelanguage.googleapis.com/v1beta/",
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-x:generateContent",
    ],
)
def test_llm_client_normalizes_base_url_for_generate_content_endpoint(base_url):
    called = {}
    client = LLMClient(
        model="gemini-3-flash-preview",
        api_key="key",
        base_url=base_url,
        post_fn=_make_post(called, _text_body("{}")),
    )

    client.generate_structured([{"text": "x"}], {})
    assert called["url"] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-3-flash-preview:generateContent"
    )
