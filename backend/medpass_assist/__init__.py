from .assistant import detect_language, fallback_reply, generate_reply
from .emergency import AlertOutcome, alert_text, build_card, qr_data_url, qr_text_for, send_alert
from .risk_model import RiskInput, RiskResult, body_mass_index, predict_risk
from .summary import EMPTY_SUMMARY, generate_summary, mock_summary, normalize_summary, record_text_blob

__all__ = [
    "EMPTY_SUMMARY",
    "AlertOutcome",
    "RiskInput",
    "RiskResult",
    "alert_text",
    "body_mass_index",
    "build_card",
    "detect_language",
    "fallback_reply",
    "generate_reply",
    "generate_summary",
    "mock_summary",
    "normalize_summary",
    "predict_risk",
    "qr_data_url",
    "qr_text_for",
    "record_text_blob",
    "send_alert",
]
