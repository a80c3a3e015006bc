"""
lifevault/activity/export.py
Activity log export.

Output: CSV (Date, Action, Category, Type) for spreadsheets, JSON (primary)
for archival. Every JSON export includes export metadata (generated_at,
filter parameters), a data integrity hash (SHA-256 of the canonical payload
before the hash field is added) and the export format version.
"""

import csv
import hashlib
import io
import json
from datetime import date
from typing import Any, Dict, List, Optional

from lifevault.activity.analytics import LogLike, log_field
from lifevault.models.record import ActivityLog
from lifevault.timeutil import parse_timestamp, to_iso, utc_now

EXPORT_FORMAT_VERSION = "1.0"
EXPORT_FORMATS        = ("csv", "json")
CSV_HEADER            = ["Date", "Action", "Category", "Type"]


def export_filename(fmt: str, today: Optional[date] = None) -> str:
    today = today or utc_now().date()
    return f"activity-log-{today.isoformat()}.{fmt}"


def _as_dict(log: LogLike) -> Dict[str, Any]:
    if isinstance(log, ActivityLog):
        return log.to_row()
    return dict(log)


def export_csv(logs: List[LogLike]) -> str:
    """One row per activity. Type falls back to 'N/A' when no entity_type is set."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for log in logs:
        ts = parse_timestamp(log_field(log, "created_at"))
        writer.writerow([
            ts.date().isoformat() if ts else "",
            log_field(log, "action_description") or "",
            log_field(log, "category") or "",
            log_field(log, "entity_type") or "N/A",
        ])
    return buf.getvalue()


def content_hash(payload: Dict[str, Any]) -> str:
    """SHA-256 of canonical JSON serialization of payload (no hash field)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def export_to_dict(
    logs:       List[LogLike],
    parameters: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    payload = {
        "export_format_version": EXPORT_FORMAT_VERSION,
        "export_metadata": {
            "generated_at": to_iso(utc_now()),
            "parameters":   dict(parameters) if parameters else {},
            "count":        len(logs),
        },
        "activities": [_as_dict(log) for log in logs],
    }
    return {**payload, "content_hash_sha256": content_hash(payload)}


def export_json(
    logs:       List[LogLike],
    parameters: Optional[Dict[str, Any]] = None,
    indent:     Optional[int]            = 2,
) -> str:
    return json.dumps(export_to_dict(logs, parameters), indent=indent, default=str)
