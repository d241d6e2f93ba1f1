from __future__ import annotations

import logging
import re

from .llm_client import openai_chat

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are MedPass AI Assistant. Be concise, friendly, and medically cautious. "
    "If asked, summarize user's records but never invent data."
)

_LANGUAGE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("hi", re.compile(r"[\u0900-\u097F]")),
    ("te", re.compile(r"[\u0C00-\u0C7F]")),
    ("ta", re.compile(r"[\u0B80-\u0BFF]")),
    ("es", re.compile(r"[\u00C0-\u017F]")),
)

_ADVICE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("bp", "blood pressure"), "Monitor your blood pressure regularly and reduce sodium intake."),
    (("glucose", "sugar"), "Limit processed sugar and stay active 30 minutes daily."),
    (("cholesterol",), "Adopt a heart-healthy diet rich in fiber and healthy fats."),
    (("headache",), "Stay hydrated, rest, and seek care if persistent or severe."),
)


def detect_language(text: str) -> str:
    for code, pattern in _LANGUAGE_PATTERNS:
        if pattern.search(text or ""):
            return code
    return "en"


def fallback_reply(message: str) -> str:
    lower = (message or "").lower()
    parts = ["I am here to help. For personalized care, consult a certified doctor."]
    for keywords, advice in _ADVICE_RULES:
        if any(keyword in lower for keyword in keywords):
            parts.append(advice)
    return " ".join(parts)


def generate_reply(message: str, language: str) -> str:
    try:
        content = openai_chat(
            [
                {"role": "system", "content": f"{_SYSTEM_PROMPT} Reply in the language with code '{language}'."},
                {"role": "user", "content": message.strip()[:2000]},
            ]
        )
    except Exception as exc:
        logger.warning("assistant provider failed, using rule-based reply: %s", exc)
        return fallback_reply(message)
    if not content:
        return fallback_reply(message)
    return content
