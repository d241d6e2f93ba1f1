"""
Envelope encryption for stored record payloads.

Payloads are serialized to canonical JSON and sealed with AES-256-GCM. The
persisted blob is ``nonce (12) || tag (16) || ciphertext``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16
HEADER_BYTES = NONCE_BYTES + TAG_BYTES

INSECURE_DEFAULT_SEED = "medpass-dev-key"


class EnvelopeIntegrityError(Exception):
    pass


class KeyConfigError(Exception):
    pass


def canonical_json(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True).encode("ascii")


def resolve_encryption_key(raw: str | None, *, allow_insecure_default: bool = True) -> tuple[bytes, bool]:
    """
    Turn a configured key string into 32 raw key bytes.

    Accepted forms, tried in order: 64 hex characters, base64 of 32 bytes,
    or a literal 32-character string. An empty value falls back to a key
    derived from a fixed seed; the second element of the returned tuple is
    True in that case so callers can flag the insecure default.
    """
    candidate = (raw or "").strip()
    if not candidate:
        if not allow_insecure_default:
            raise KeyConfigError("MEDPASS_ENC_KEY is required when secure keys are enforced.")
        logger.warning("MEDPASS_ENC_KEY not set; using the insecure development key")
        return hashlib.sha256(INSECURE_DEFAULT_SEED.encode("utf-8")).digest(), True

    if len(candidate) == KEY_BYTES * 2:
        try:
            return bytes.fromhex(candidate), False
        except ValueError:
            pass
    try:
        decoded = base64.b64decode(candidate, validate=True)
    except (binascii.Error, ValueError):
        decoded = b""
    if len(decoded) == KEY_BYTES:
        return decoded, False
    encoded = candidate.encode("utf-8")
    if len(encoded) == KEY_BYTES:
        return encoded, False
    raise KeyConfigError("MEDPASS_ENC_KEY must be 32 bytes (hex, base64 or a 32-character string).")


class EnvelopeCipher:
    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_BYTES:
            raise KeyConfigError(f"Envelope key must be {KEY_BYTES} bytes, got {len(key)}.")
        self._aead = AESGCM(key)

    def seal(self, value: Any) -> bytes:
        nonce = os.urandom(NONCE_BYTES)
        # AESGCM appends the tag to the ciphertext; the stored layout puts it first.
        sealed = self._aead.encrypt(nonce, canonical_json(value), None)
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return nonce + tag + ciphertext

    def open(self, blob: bytes) -> Any:
        data = bytes(blob)
        if len(data) < HEADER_BYTES:
            raise EnvelopeIntegrityError("Encrypted blob is truncated.")
        nonce = data[:NONCE_BYTES]
        tag = data[NONCE_BYTES:HEADER_BYTES]
        ciphertext = data[HEADER_BYTES:]
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise EnvelopeIntegrityError("Encrypted blob failed authentication.") from exc
        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise EnvelopeIntegrityError("Decrypted payload is not valid JSON.") from exc
