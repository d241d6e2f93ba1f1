from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gpt-4o-mini"
_JSON_DECODER = json.JSONDecoder()


def provider_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        detail = error.get("message") if isinstance(error, dict) else body.get("message")
        if isinstance(detail, str) and detail.strip():
            return detail.strip()
    return response.text.strip() or f"HTTP {response.status_code}"


def extract_json_object(raw_text: str) -> dict[str, Any] | None:
    """Return the first JSON object embedded in a model reply, fenced or not."""
    text = (raw_text or "").strip()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = _JSON_DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def coerce_completion_text(response_json: dict[str, Any]) -> str:
    choices = response_json.get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, list):
        # Some compatible providers return content as typed parts.
        return "\n".join(
            part["text"] for part in content if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return content if isinstance(content, str) else ""


def chat_api_key() -> str:
    return (os.getenv("OPENAI_API_KEY") or "").strip()


def openai_chat(
    messages: list[dict[str, str]],
    *,
    temperature: float | None = None,
    timeout_seconds: float | None = None,
) -> str | None:
    """Send one chat completion request. Returns None when no key is configured.

    Provider failures raise RuntimeError; callers decide on their fallback.
    """
    api_key = chat_api_key()
    if not api_key:
        return None
    base_url = os.getenv("OPENAI_API_BASE_URL", "https://api.openai.com/v1").rstrip("/")
    payload: dict[str, Any] = {
        "model": (os.getenv("MEDPASS_CHAT_MODEL") or DEFAULT_CHAT_MODEL).strip(),
        "messages": messages,
    }
    if temperature is not None:
        payload["temperature"] = temperature
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    timeout = timeout_seconds or float(os.getenv("MEDPASS_CHAT_TIMEOUT_SECONDS", "25"))
    with httpx.Client(timeout=httpx.Timeout(timeout, connect=8.0)) as client:
        response = client.post(f"{base_url}/chat/completions", headers=headers, json=payload)
    if response.status_code >= 400:
        raise RuntimeError(provider_error_message(response))
    text = coerce_completion_text(response.json()).strip()
    return text or None
