from __future__ import annotations

import logging
from typing import Any

from .llm_client import extract_json_object, openai_chat

logger = logging.getLogger(__name__)

SUMMARY_INPUT_MAX_CHARS = 12000

EMPTY_SUMMARY = {
    "overview": "No medical data found. Please upload your records first.",
    "trends": [],
    "alerts": [],
    "recommendations": ["Upload medical records to enable analysis"],
}

_SYSTEM_PROMPT = (
    "Summarize the following medical record text into concise sections: overview, trends (array), "
    "alerts (array), recommendations (array). Respond with a JSON object. Keep it factual and non-diagnostic."
)


def record_text_blob(payloads: list[Any]) -> str:
    chunks: list[str] = []
    for payload in payloads:
        if not isinstance(payload, dict):
            continue
        fields = payload.get("fields") if isinstance(payload.get("fields"), dict) else {}
        parts = [
            payload.get("summary"),
            fields.get("diagnosis"),
            fields.get("medicines"),
            fields.get("raw_text"),
        ]
        text = "\n".join(str(part) for part in parts if part)
        if text:
            chunks.append(text)
    return "\n\n".join(chunks)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def normalize_summary(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "overview": str(raw.get("overview") or "").strip() or "Summary generated.",
        "trends": _string_list(raw.get("trends")),
        "alerts": _string_list(raw.get("alerts")),
        "recommendations": _string_list(raw.get("recommendations")),
    }


def mock_summary(text: str) -> dict[str, Any]:
    lower = (text or "").lower()
    mentions_bp = "bp" in lower or "blood pressure" in lower
    mentions_glucose = "glucose" in lower or "sugar" in lower
    trends: list[str] = []
    if mentions_bp:
        trends.append("Blood pressure noted in records")
    if mentions_glucose:
        trends.append("Glucose-related entries detected")
    if "cholesterol" in lower:
        trends.append("Cholesterol values mentioned")
    alerts: list[str] = []
    if "high" in lower and ("bp" in lower or "glucose" in lower or "cholesterol" in lower):
        alerts.append("Potential elevated metrics present")
    return {
        "overview": "Automated summary based on your uploaded records. Verify with your physician.",
        "trends": trends,
        "alerts": alerts,
        "recommendations": [
            "Maintain regular exercise (30 mins daily)",
            "Balanced diet with reduced processed sugar",
            "Stay hydrated",
        ],
    }


def generate_summary(text: str) -> dict[str, Any]:
    try:
        content = openai_chat(
            [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": text[:SUMMARY_INPUT_MAX_CHARS]},
            ],
            temperature=0.2,
        )
    except Exception as exc:
        logger.warning("summary provider failed, using rule-based summary: %s", exc)
        return mock_summary(text)
    if content is None:
        return mock_summary(text)
    parsed = extract_json_object(content)
    if parsed is not None:
        return normalize_summary(parsed)
    return normalize_summary({"overview": content[:400]})
