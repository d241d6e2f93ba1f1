from __future__ import annotations

import logging
import os
import re
import secrets
import tempfile
import time
from datetime import timedelta
from pathlib import Path
from typing import Any

import bcrypt
import jwt
import uvicorn
from fastapi import Body, Cookie, FastAPI, File, Header, HTTPException, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from medpass_assist import (
    EMPTY_SUMMARY,
    RiskInput,
    alert_text,
    build_card,
    detect_language,
    generate_reply,
    generate_summary,
    predict_risk,
    qr_data_url,
    qr_text_for,
    record_text_blob,
    send_alert,
)
from medpass_ingest import IngestionError, IngestionOrchestrator, TextExtractor, UnsupportedFileType, UploadedFile
from medpass_records import (
    DuplicateAccountError,
    EnvelopeCipher,
    EnvelopeIntegrityError,
    RecordPolicyError,
    RecordService,
    SQLiteRecordDB,
    resolve_encryption_key,
)
from medpass_records.time_utils import to_iso, utc_now

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


_bootstrap_local_env()


def configure_logging() -> None:
    level_name = (os.getenv("MEDPASS_LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging()
logger = logging.getLogger("medpass")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


SESSION_COOKIE = "mp_session"
_JWT_ALG = "HS256"
_DEV_JWT_SECRET = "medpass-dev-jwt-secret-change-me-in-production"
_MAX_UPLOAD_BYTES = int(os.getenv("MEDPASS_MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))
_MAX_BATCH_FILES = int(os.getenv("MEDPASS_MAX_BATCH_FILES", "10"))
_BCRYPT_MAX_PASSWORD_BYTES = 72


class SignupRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class ManualRecordRequest(BaseModel):
    title: str | None = None
    text: str | None = None


class PredictRequest(BaseModel):
    age: float = 0
    gender: str = "unknown"
    systolic: float = 0
    diastolic: float = 0
    glucose: float = 0
    cholesterol: float = 0
    weight: float = 0
    height: float = 0
    smoker: bool = False
    activity_level: str = "low"


class AssistantMessageRequest(BaseModel):
    message: str | None = None
    language: str | None = None


class EmergencyInfoRequest(BaseModel):
    name: str | None = None
    blood_group: str | None = None
    allergies: str | None = None
    medications: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None


class EmergencyAlertRequest(BaseModel):
    message_override: str | None = None


class MedPassApp:
    def __init__(self) -> None:
        data_dir = Path(__file__).resolve().parent / "data"
        db_path = os.getenv("MEDPASS_DB_PATH", str(data_dir / "medpass.db"))
        uploads_dir = Path(os.getenv("MEDPASS_UPLOADS_DIR", str(data_dir / "uploads"))).expanduser().resolve()
        uploads_dir.mkdir(parents=True, exist_ok=True)

        require_secure = _env_flag("MEDPASS_REQUIRE_SECURE_KEYS")
        key, self.insecure_key = resolve_encryption_key(
            os.getenv("MEDPASS_ENC_KEY"),
            allow_insecure_default=not require_secure,
        )
        self.jwt_secret = self._resolve_jwt_secret(require_secure)
        self.session_ttl = timedelta(days=int(os.getenv("MEDPASS_SESSION_TTL_DAYS", "7")))
        self.bcrypt_rounds = int(os.getenv("MEDPASS_BCRYPT_ROUNDS", "10"))

        self.db = SQLiteRecordDB(db_path)
        self.records = RecordService(self.db, EnvelopeCipher(key), uploads_dir)
        self.extractor = TextExtractor(
            ocr_lang=os.getenv("MEDPASS_OCR_LANG", "eng"),
            ocr_timeout_seconds=float(os.getenv("MEDPASS_OCR_TIMEOUT_SECONDS", "60")),
        )
        self.ingest = IngestionOrchestrator(self.records, self.extractor)

    @staticmethod
    def _resolve_jwt_secret(require_secure: bool) -> str:
        secret = (os.getenv("MEDPASS_JWT_SECRET") or "").strip()
        if secret:
            return secret
        if require_secure:
            raise RuntimeError("MEDPASS_JWT_SECRET is required when secure keys are enforced.")
        logger.warning("MEDPASS_JWT_SECRET not set; using the insecure development secret")
        return _DEV_JWT_SECRET

    def hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    def issue_session_token(self, user: dict[str, Any]) -> str:
        now = utc_now()
        claims = {
            "id": user["id"],
            "email": user.get("email", ""),
            "name": user.get("name", ""),
            "iat": int(now.timestamp()),
            "exp": int((now + self.session_ttl).timestamp()),
        }
        return jwt.encode(claims, self.jwt_secret, algorithm=_JWT_ALG)

    def read_session_token(self, token: str) -> dict[str, Any] | None:
        try:
            claims = jwt.decode(token, self.jwt_secret, algorithms=[_JWT_ALG])
        except jwt.PyJWTError:
            return None
        if not isinstance(claims.get("id"), str):
            return None
        return claims


container = MedPassApp()
app = FastAPI(title="MedPass Backend")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Content-Type", "Authorization"],
)
app.mount("/uploads", StaticFiles(directory=str(container.records.uploads_dir)), name="uploads")


def resolve_session(mp_session: str | None, authorization: str | None) -> dict[str, str]:
    token = (mp_session or "").strip()
    if not token and authorization:
        token = authorization.replace("Bearer", "", 1).strip()
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    claims = container.read_session_token(token)
    if claims is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        user_id = container.records.guard.ensure_owner(claims["id"])
    except RecordPolicyError as exc:
        raise HTTPException(status_code=401, detail="Unauthorized") from exc
    return {"id": user_id, "email": str(claims.get("email") or ""), "name": str(claims.get("name") or "")}


def _set_session_cookie(response: Response, user: dict[str, Any]) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        container.issue_session_token(user),
        httponly=True,
        samesite="lax",
        secure=_env_flag("MEDPASS_SECURE_COOKIES"),
        max_age=int(container.session_ttl.total_seconds()),
        path="/",
    )


def _normalize_upload_filename(upload: UploadFile | None, fallback_name: str) -> str:
    file_name = (upload.filename or "").strip() if upload else ""
    # Browsers on some platforms send the full client path.
    file_name = file_name.replace("\\", "/").rsplit("/", 1)[-1]
    return file_name or fallback_name


def _extension_from_filename(file_name: str) -> str:
    return Path(file_name).suffix.lower().strip()


async def _read_upload_bytes(upload: UploadFile, *, max_bytes: int, too_large_detail: str) -> bytes:
    raw = await upload.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise HTTPException(status_code=413, detail=too_large_detail)
    return raw


def _stored_upload_name(file_name: str) -> str:
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}-{file_name}"


def _too_large_detail() -> str:
    return f"File exceeds {_MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit."


def _write_upload_batch(received: list[tuple[str, bytes]]) -> list[UploadedFile]:
    saved: list[UploadedFile] = []
    try:
        for file_name, raw in received:
            target = container.records.uploads_dir / _stored_upload_name(file_name)
            target.write_bytes(raw)
            saved.append(UploadedFile(path=target, original_name=file_name, size=len(raw)))
    except OSError as exc:
        logger.error("could not store upload batch after %d of %d files: %s", len(saved), len(received), exc)
        for upload in saved:
            container.records.remove_upload(upload.path)
        raise HTTPException(status_code=500, detail="Upload failed") from exc
    return saved


@app.get("/health")
def health():
    return {"status": "ok", "message": "MedPass backend is running"}


@app.post("/api/auth/signup")
def auth_signup(payload: SignupRequest, response: Response):
    name = (payload.name or "").strip()
    email = (payload.email or "").strip().lower()
    password = payload.password or ""
    if not name or not email or not password:
        raise HTTPException(status_code=400, detail="Missing fields")
    if len(password.encode("utf-8")) > _BCRYPT_MAX_PASSWORD_BYTES:
        raise HTTPException(status_code=400, detail="Password too long")
    if container.records.accounts.email_exists(email):
        raise HTTPException(status_code=409, detail="Email already registered")
    try:
        user = container.records.accounts.create_user(
            name=name,
            email=email,
            password_hash=container.hash_password(password),
        )
    except DuplicateAccountError as exc:
        raise HTTPException(status_code=409, detail="Email already registered") from exc
    _set_session_cookie(response, user)
    return {"ok": True, "user": user}


@app.post("/api/auth/login")
def auth_login(payload: LoginRequest, response: Response):
    email = (payload.email or "").strip().lower()
    password = payload.password or ""
    if not email or not password:
        raise HTTPException(status_code=400, detail="Missing fields")
    row = container.records.accounts.get_by_email(email)
    if not row or not container.verify_password(password, row["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user = {"id": row["id"], "email": row["email"], "name": row["name"]}
    _set_session_cookie(response, user)
    return {"ok": True, "user": user}


@app.post("/api/auth/logout")
def auth_logout(response: Response):
    response.delete_cookie(SESSION_COOKIE, path="/")
    return {"ok": True}


@app.get("/api/auth/me")
def auth_me(
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    return {"ok": True, "user": user, "record_count": container.records.records.count_for_owner(user["id"])}


@app.post("/api/upload")
async def upload_preview(
    file: UploadFile | None = File(default=None),
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    resolve_session(mp_session, authorization)
    if file is None:
        raise HTTPException(status_code=400, detail="No file")
    file_name = _normalize_upload_filename(file, "upload")
    ext = _extension_from_filename(file_name)
    if container.extractor.resolve(ext) is None:
        raise HTTPException(status_code=400, detail="Unsupported file type")
    raw = await _read_upload_bytes(file, max_bytes=_MAX_UPLOAD_BYTES, too_large_detail=_too_large_detail())

    with tempfile.TemporaryDirectory(prefix="medpass-preview-") as tmp_dir:
        path = Path(tmp_dir) / f"preview{ext}"
        path.write_bytes(raw)
        try:
            fields = await run_in_threadpool(
                container.ingest.preview,
                UploadedFile(path=path, original_name=file_name, size=len(raw)),
            )
        except UnsupportedFileType as exc:
            raise HTTPException(status_code=400, detail="Unsupported file type") from exc
        except IngestionError as exc:
            raise HTTPException(status_code=500, detail="OCR failed") from exc
    return {"ok": True, "fields": fields.as_dict()}


@app.post("/api/records/upload")
async def records_upload(
    files: list[UploadFile] | None = File(default=None),
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    uploads = [upload for upload in (files or []) if upload is not None]
    if not uploads:
        raise HTTPException(status_code=400, detail="No files")
    if len(uploads) > _MAX_BATCH_FILES:
        raise HTTPException(status_code=400, detail=f"Too many files (max {_MAX_BATCH_FILES})")

    received: list[tuple[str, bytes]] = []
    for upload in uploads:
        file_name = _normalize_upload_filename(upload, "upload")
        raw = await _read_upload_bytes(upload, max_bytes=_MAX_UPLOAD_BYTES, too_large_detail=_too_large_detail())
        received.append((file_name, raw))

    saved = _write_upload_batch(received)
    try:
        records = await run_in_threadpool(container.ingest.ingest, user["id"], saved)
    except IngestionError as exc:
        raise HTTPException(status_code=500, detail="Upload failed") from exc
    return {"ok": True, "items": [record.as_response() for record in records]}


@app.post("/api/records/manual")
def records_manual(
    payload: ManualRecordRequest,
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    try:
        record = container.ingest.ingest_manual(user["id"], payload.title, payload.text)
    except IngestionError as exc:
        raise HTTPException(status_code=500, detail="Save failed") from exc
    return {"ok": True, "item": record.as_response()}


@app.post("/api/records")
def records_save(
    payload: dict[str, Any] = Body(...),
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    try:
        record = container.ingest.save_structured(user["id"], payload)
    except IngestionError as exc:
        raise HTTPException(status_code=500, detail="Save failed") from exc
    return {"ok": True, "id": record.id}


@app.get("/api/records")
def records_list(
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    try:
        records = container.records.list_records(user["id"])
    except EnvelopeIntegrityError as exc:
        logger.error("record decryption failed for owner %s: %s", user["id"], exc)
        raise HTTPException(status_code=500, detail="Decrypt failed") from exc
    return {"ok": True, "items": [record.as_response() for record in records]}


@app.get("/api/records/{record_id}")
def records_get(
    record_id: str,
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    try:
        record = container.records.get_record(record_id, user["id"])
    except EnvelopeIntegrityError as exc:
        logger.error("record %s failed decryption: %s", record_id, exc)
        raise HTTPException(status_code=500, detail="Decrypt failed") from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True, "item": record.as_response()}


@app.delete("/api/records/{record_id}")
def records_delete(
    record_id: str,
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    if not container.records.delete_record(record_id, user["id"]):
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True}


@app.post("/api/ai/predict")
def ai_predict(
    payload: PredictRequest,
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    input_payload = payload.model_dump()
    result = predict_risk(RiskInput(**input_payload)).as_dict()
    prediction = container.records.insights.add_prediction(
        user_id=user["id"],
        input_payload=input_payload,
        result=result,
    )
    return {"ok": True, "prediction": prediction}


@app.get("/api/ai/predict/history")
def ai_predict_history(
    limit: int = 20,
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    return {"ok": True, "items": container.records.insights.list_predictions(user["id"], limit)}


@app.post("/api/ai/summary")
def ai_summary(
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    try:
        payloads = container.records.decrypted_payloads(user["id"])
    except EnvelopeIntegrityError as exc:
        logger.error("summary aborted, record decryption failed for owner %s: %s", user["id"], exc)
        raise HTTPException(status_code=500, detail="Summary generation failed") from exc
    if not payloads:
        return {"ok": True, "summary": dict(EMPTY_SUMMARY)}
    summary = generate_summary(record_text_blob(payloads))
    stored = container.records.insights.add_summary(user_id=user["id"], summary=summary)
    return {"ok": True, "summary": summary, "created_at": stored["created_at"], "id": stored["id"]}


@app.get("/api/ai/summary/latest")
def ai_summary_latest(
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    latest = container.records.insights.latest_summary(user["id"])
    if latest is None:
        return {"ok": True, "summary": None}
    return {"ok": True, **latest}


@app.get("/api/assistant/history")
def assistant_history(
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    return {"ok": True, "items": container.records.insights.chat_history(user["id"], limit=200)}


@app.post("/api/assistant/message")
def assistant_message(
    payload: AssistantMessageRequest,
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    message = (payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Missing message")
    language = (payload.language or "").strip() or detect_language(message)
    insights = container.records.insights
    insights.append_chat_turn(user_id=user["id"], role="user", message=message, language=language)
    reply = generate_reply(message, language)
    insights.append_chat_turn(user_id=user["id"], role="assistant", message=reply, language=language)
    return {"ok": True, "reply": reply, "language": language}


@app.get("/api/emergency/data")
def emergency_data(
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    try:
        stored = container.records.get_emergency_info(user["id"])
    except EnvelopeIntegrityError as exc:
        raise HTTPException(status_code=500, detail="Decrypt failed") from exc
    if stored is None:
        return {"ok": True, "data": None}
    data, updated_at = stored
    return {"ok": True, "data": data, "updated_at": updated_at}


@app.post("/api/emergency/qr")
def emergency_qr(
    payload: EmergencyInfoRequest,
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    card = build_card(
        payload.model_dump(),
        user_id=user["id"],
        fallback_name=user["name"] or user["email"],
        updated_at=to_iso(utc_now()),
    )
    _, data_enc = container.records.save_emergency_info(user["id"], card)
    qr_text = qr_text_for(data_enc)
    return {"ok": True, "data_url": qr_data_url(qr_text), "qr_text": qr_text}


@app.post("/api/emergency/alert")
def emergency_alert(
    payload: EmergencyAlertRequest | None = None,
    mp_session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    user = resolve_session(mp_session, authorization)
    try:
        stored = container.records.get_emergency_info(user["id"])
    except EnvelopeIntegrityError as exc:
        raise HTTPException(status_code=500, detail="Alert failed") from exc
    if stored is None:
        raise HTTPException(status_code=400, detail="No emergency info saved")
    card, _ = stored
    to_number = str(card.get("emergency_contact_phone") or "").strip()
    if not to_number:
        raise HTTPException(status_code=400, detail="Missing emergency contact phone")
    override = payload.message_override if payload else None
    return send_alert(to_number, alert_text(card, override)).as_dict()


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("MEDPASS_HOST", "127.0.0.1"), port=int(os.getenv("MEDPASS_PORT", "8000")))
