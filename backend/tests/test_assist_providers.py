from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from medpass_assist import fallback_reply, generate_reply, generate_summary, mock_summary, send_alert
from medpass_assist.llm_client import coerce_completion_text, extract_json_object, openai_chat

RECORD_TEXT = "High glucose noted\nDiagnosis: Type 2 diabetes"


@pytest.fixture
def provider(monkeypatch) -> Callable[[Callable[[httpx.Request], httpx.Response]], list[httpx.Request]]:
    """Route every httpx.Client through a mock transport and record the requests."""
    real_client = httpx.Client

    def _install(handler):
        seen: list[httpx.Request] = []

        def _recording(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        def _client(*args, **kwargs):
            return real_client(*args, transport=httpx.MockTransport(_recording), **kwargs)

        monkeypatch.setattr(httpx, "Client", _client)
        return seen

    return _install


@pytest.fixture
def chat_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_API_BASE_URL", "https://llm.example.test/v1")
    monkeypatch.setenv("MEDPASS_CHAT_MODEL", "test-model")


def _completion(content) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def test_json_summary_reply_is_normalized(provider, chat_key):
    reply = 'Here you go:\n```json\n{"overview": " Glucose trending up ", "trends": ["glucose"], "alerts": "none"}\n```'
    seen = provider(lambda request: _completion(reply))

    summary = generate_summary(RECORD_TEXT)

    assert summary == {
        "overview": "Glucose trending up",
        "trends": ["glucose"],
        "alerts": [],
        "recommendations": [],
    }
    request = seen[0]
    assert str(request.url) == "https://llm.example.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.2
    assert body["messages"][1]["content"] == RECORD_TEXT


def test_plain_text_summary_reply_becomes_truncated_overview(provider, chat_key):
    provider(lambda request: _completion("word " * 200))

    summary = generate_summary(RECORD_TEXT)

    assert summary["overview"] == ("word " * 200)[:400].strip()
    assert summary["trends"] == []
    assert summary["recommendations"] == []


def test_provider_error_falls_back_to_local_rules(provider, chat_key):
    provider(lambda request: httpx.Response(401, json={"error": {"message": "invalid api key"}}))

    assert generate_summary(RECORD_TEXT) == mock_summary(RECORD_TEXT)
    assert generate_reply("my sugar is high", "en") == fallback_reply("my sugar is high")


def test_openai_chat_surfaces_provider_error_message(provider, chat_key):
    provider(lambda request: httpx.Response(429, json={"error": {"message": "rate limited"}}))

    with pytest.raises(RuntimeError, match="rate limited"):
        openai_chat([{"role": "user", "content": "hi"}])


def test_assistant_reply_uses_provider_text_and_language(provider, chat_key):
    seen = provider(lambda request: _completion([{"type": "text", "text": "Hola."}, {"type": "text", "text": "Bebe agua."}]))

    reply = generate_reply("tengo dolor de cabeza", "es")

    assert reply == "Hola.\nBebe agua."
    system_prompt = json.loads(seen[0].content)["messages"][0]["content"]
    assert "'es'" in system_prompt


def test_no_key_skips_the_provider(provider, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "")
    seen = provider(lambda request: _completion("unused"))

    assert openai_chat([{"role": "user", "content": "hi"}]) is None
    assert seen == []


def test_reply_helpers_handle_odd_shapes():
    assert extract_json_object('noise {"a": {"b": 1}} trailing') == {"a": {"b": 1}}
    assert extract_json_object("{broken} then {\"ok\": true}") == {"ok": True}
    assert extract_json_object("no json here") is None
    assert coerce_completion_text({"choices": []}) == ""
    assert coerce_completion_text({"choices": [{"message": {"content": None}}]}) == ""


@pytest.fixture
def twilio_env(monkeypatch):
    monkeypatch.setenv("TWILIO_SID", "AC123")
    monkeypatch.setenv("TWILIO_TOKEN", "secret-token")
    monkeypatch.setenv("TWILIO_FROM", "+15550000")


def test_sms_accepted_by_provider_is_delivered(provider, twilio_env):
    seen = provider(lambda request: httpx.Response(201, json={"sid": "SM1"}))

    outcome = send_alert("+15550100", "Emergency Alert: test")

    assert outcome.as_dict() == {"ok": True, "delivered": True, "limited": False}
    request = seen[0]
    assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    assert request.headers["Authorization"].startswith("Basic ")
    form = httpx.QueryParams(request.content.decode("utf-8"))
    assert form["To"] == "+15550100"
    assert form["From"] == "+15550000"
    assert form["Body"] == "Emergency Alert: test"


def test_sms_rejected_by_provider_is_limited(provider, twilio_env):
    provider(lambda request: httpx.Response(400, json={"message": "invalid number"}))

    outcome = send_alert("+15550100", "Emergency Alert: test")

    assert outcome.as_dict() == {"ok": True, "delivered": False, "limited": True}


def test_sms_transport_failure_is_limited(provider, twilio_env):
    def _refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider(_refuse)

    assert send_alert("+15550100", "hello").delivered is False
