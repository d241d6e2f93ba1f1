from __future__ import annotations

import re
from pathlib import Path


class RecordPolicyError(Exception):
    pass


class RecordPolicyGuard:
    _OWNER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")
    _UPLOAD_URL_PREFIX = "/uploads/"

    def __init__(self, uploads_dir: str | Path) -> None:
        self.uploads_dir = Path(uploads_dir).expanduser().resolve()

    def ensure_owner(self, owner_id: str) -> str:
        candidate = (owner_id or "").strip()
        if not self._OWNER_ID_RE.fullmatch(candidate):
            raise RecordPolicyError("Invalid owner scope.")
        return candidate

    def ensure_owner_scope(self, requested_owner_id: str, scoped_owner_id: str) -> None:
        if requested_owner_id != scoped_owner_id:
            raise RecordPolicyError("Cross-owner access is blocked.")

    def upload_url_for(self, stored_path: str | Path) -> str:
        return f"{self._UPLOAD_URL_PREFIX}{Path(stored_path).name}"

    def resolve_upload_url(self, file_url: str | None) -> Path | None:
        """Map a stored ``/uploads/...`` URL back to a path inside the uploads directory.

        Returns None for anything that would land outside it.
        """
        if not file_url or not isinstance(file_url, str):
            return None
        if not file_url.startswith(self._UPLOAD_URL_PREFIX):
            return None
        relative = file_url[len(self._UPLOAD_URL_PREFIX) :]
        if not relative:
            return None
        candidate = (self.uploads_dir / relative).resolve()
        if candidate == self.uploads_dir or not candidate.is_relative_to(self.uploads_dir):
            return None
        return candidate
