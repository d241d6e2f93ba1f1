from __future__ import annotations

import base64
import io
import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx
import qrcode
from qrcode.image.pil import PilImage

logger = logging.getLogger(__name__)

QR_PREFIX = "mpemg:"
_TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

EMERGENCY_FIELDS = (
    "blood_group",
    "allergies",
    "medications",
    "emergency_contact_name",
    "emergency_contact_phone",
)


@dataclass(frozen=True)
class AlertOutcome:
    delivered: bool
    limited: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {"ok": True, "delivered": self.delivered, "limited": self.limited}


def build_card(info: dict[str, Any], *, user_id: str, fallback_name: str, updated_at: str) -> dict[str, Any]:
    card = {
        "user_id": user_id,
        "name": str(info.get("name") or fallback_name or ""),
        "updated_at": updated_at,
    }
    for key in EMERGENCY_FIELDS:
        card[key] = str(info.get(key) or "")
    return card


def qr_text_for(blob: bytes) -> str:
    return f"{QR_PREFIX}{blob.hex()}"


def qr_data_url(text: str) -> str:
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=6, border=2)
    qr.add_data(text)
    qr.make(fit=True)
    image = qr.make_image(image_factory=PilImage)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def alert_text(card: dict[str, Any], message_override: str | None = None) -> str:
    if message_override and message_override.strip():
        return message_override.strip()
    return (
        f"Emergency Alert: {card.get('name') or 'MedPass User'} may need assistance. "
        f"Health: {card.get('blood_group') or 'N/A'}; Allergies: {card.get('allergies') or 'N/A'}. "
        "Shared by MedPass."
    )


def send_alert(to_number: str, body: str) -> AlertOutcome:
    account_sid = (os.getenv("TWILIO_SID") or "").strip()
    auth_token = (os.getenv("TWILIO_TOKEN") or "").strip()
    from_number = (os.getenv("TWILIO_FROM") or "").strip()
    if not (account_sid and auth_token and from_number):
        logger.info("sms provider not configured; emergency alert simulated")
        return AlertOutcome(delivered=False, limited=True)
    try:
        with httpx.Client(timeout=httpx.Timeout(15.0, connect=8.0)) as client:
            response = client.post(
                f"{_TWILIO_API_BASE}/Accounts/{account_sid}/Messages.json",
                auth=(account_sid, auth_token),
                data={"To": to_number, "From": from_number, "Body": body},
            )
    except httpx.HTTPError as exc:
        logger.warning("sms send failed: %s", exc)
        return AlertOutcome(delivered=False, limited=True)
    if response.status_code >= 400:
        logger.warning("sms send rejected with HTTP %s", response.status_code)
        return AlertOutcome(delivered=False, limited=True)
    return AlertOutcome(delivered=True)
