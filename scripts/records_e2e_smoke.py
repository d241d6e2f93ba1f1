#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  file_name: str
  body: bytes
  expected_fields: dict[str, str]
  expected_type: str


def check_fields(actual: dict[str, Any], expected: dict[str, str]) -> list[str]:
  mismatches: list[str] = []
  for key, value in expected.items():
    if actual.get(key) != value:
      mismatches.append(f"{key}: expected {value!r}, got {actual.get(key)!r}")
  return mismatches


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  # Run against a throwaway database so the smoke never touches real records.
  scratch = Path(tempfile.mkdtemp(prefix="medpass-smoke-"))
  os.environ.setdefault("MEDPASS_DB_PATH", str(scratch / "medpass.sqlite"))
  os.environ.setdefault("MEDPASS_UPLOADS_DIR", str(scratch / "uploads"))

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)

  smoke_user = f"smoke-{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')}"
  token = backend_module.container.issue_session_token(
    {"id": smoke_user, "email": f"{smoke_user}@example.com", "name": "Smoke User"}
  )
  headers = {"Authorization": f"Bearer {token}"}

  scenarios = [
    Scenario(
      name="Single-line visit note",
      file_name="visit.txt",
      body=b"Visit on 12/05/2023. Diagnosis: Hypertension. Rx: Amlodipine 5mg. Follow up: 2 weeks.",
      expected_fields={
        "date": "12/05/2023",
        "diagnosis": "Hypertension.",
        "medicines": "Amlodipine 5mg.",
        "follow_up": "2 weeks.",
      },
      expected_type="Prescription",
    ),
    Scenario(
      name="Multi-line lab report",
      file_name="lab_report.txt",
      body=b"City Clinic\nDr. Meera Rao\n2024-01-15\nDiagnosis: Iron deficiency anemia\nReview: 1 month",
      expected_fields={
        "hospital": "Clinic",
        "doctor": "Dr. Meera Rao",
        "date": "2024-01-15",
        "diagnosis": "Iron deficiency anemia",
        "follow_up": "1 month",
      },
      expected_type="Report",
    ),
  ]

  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    for scenario in scenarios:
      upload_response = client.post(
        "/api/records/upload",
        headers=headers,
        files={"files": (scenario.file_name, scenario.body, "text/plain")},
      )
      scenario_result: dict[str, Any] = {
        "name": scenario.name,
        "upload_status_code": upload_response.status_code,
      }
      if upload_response.status_code != 200:
        scenario_result["pass"] = False
        scenario_result["error"] = f"/api/records/upload returned {upload_response.status_code}"
        results.append(scenario_result)
        continue

      item = upload_response.json()["items"][0]
      record_id = item["id"]
      fetched = client.get(f"/api/records/{record_id}", headers=headers)
      scenario_result["get_status_code"] = fetched.status_code
      data = fetched.json().get("item", {}).get("data", {}) if fetched.status_code == 200 else {}
      scenario_result["record"] = data

      mismatches = check_fields(data.get("fields") or {}, scenario.expected_fields)
      if data.get("record_type") != scenario.expected_type:
        mismatches.append(f"record_type: expected {scenario.expected_type!r}, got {data.get('record_type')!r}")

      deleted = client.delete(f"/api/records/{record_id}", headers=headers)
      scenario_result["delete_status_code"] = deleted.status_code
      if deleted.status_code != 200:
        mismatches.append(f"delete returned {deleted.status_code}")

      scenario_result["pass"] = fetched.status_code == 200 and not mismatches
      if mismatches:
        scenario_result["error"] = "; ".join(mismatches)
      results.append(scenario_result)

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# Records E2E Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- MEDPASS_DB_PATH: `{os.getenv('MEDPASS_DB_PATH')}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]

  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    report_lines.append(f"- Upload status code: `{item.get('upload_status_code')}`")
    report_lines.append(f"- Get status code: `{item.get('get_status_code')}`")
    report_lines.append(f"- Delete status code: `{item.get('delete_status_code')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    report_lines.append("- Decrypted record:")
    report_lines.append("```json")
    report_lines.append(json.dumps(item.get("record"), indent=2, ensure_ascii=True))
    report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "RECORDS_E2E_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
