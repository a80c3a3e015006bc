"""
tests/test_activity.py
Activity logger, service and export.
"""

import csv
import io
import json
from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from lifevault.activity.export import (
    CSV_HEADER,
    EXPORT_FORMAT_VERSION,
    content_hash,
    export_csv,
    export_filename,
    export_json,
    export_to_dict,
)
from lifevault.activity.logger import ACTIVITY_TABLE, ActivityLogger, describe_action
from lifevault.activity.service import ActivityService
from lifevault.errors import BackendError, ValidationError
from lifevault.timeutil import to_iso, utc_now


def _seed(backend, user_id, category, days_ago, description="did something", entity_type=None):
    return backend.insert(ACTIVITY_TABLE, {
        "user_id": user_id,
        "action_type": "added",
        "action_description": description,
        "category": category,
        "entity_type": entity_type,
        "metadata": {},
        "created_at": to_iso(utc_now() - timedelta(days=days_ago)),
    })


class TestActivityLogger:
    def test_describe_action(self):
        assert describe_action("added", "contact", "Alice") == "Added contact Alice"

    def test_log_inserts_row(self, backend, session):
        row = ActivityLogger(backend).log(
            session.user.id, "uploaded", "Uploaded medical document X", "medical",
            entity_type="vault_entry", metadata={"file_name": "x.pdf"},
        )
        assert row["category"] == "medical"
        assert row["metadata"] == {"file_name": "x.pdf"}

    def test_no_user_no_row(self, backend):
        assert ActivityLogger(backend).log(None, "added", "x", "contact") is None

    def test_backend_failure_swallowed(self):
        failing = MagicMock()
        failing.insert.side_effect = BackendError("down")
        assert ActivityLogger(failing).log("u1", "added", "x", "contact") is None

    def test_log_contact_shape(self, backend, session):
        row = ActivityLogger(backend).log_contact(session.user.id, "favorited", "Bob", "c-1")
        assert row["action_description"] == "Favorited contact Bob"
        assert row["entity_type"] == "contact"
        assert row["entity_id"] == "c-1"
        assert row["metadata"] == {"contact_name": "Bob"}


class TestActivityService:
    def test_newest_first_and_limited(self, backend, session):
        uid = session.user.id
        for d in (5, 1, 3):
            _seed(backend, uid, "contact", d, description=f"{d}")
        logs = ActivityService(backend, limit=2).list_activities(uid)
        assert [l.action_description for l in logs] == ["1", "3"]

    def test_scoped_to_user(self, backend, session, other_session):
        _seed(backend, session.user.id, "contact", 1)
        _seed(backend, other_session.user.id, "contact", 1)
        svc = ActivityService(backend)
        assert len(svc.list_activities(session.user.id)) == 1
        assert svc.delete_all(session.user.id) == 1
        assert len(svc.list_activities(other_session.user.id)) == 1

    def test_overview(self, backend, session):
        uid = session.user.id
        _seed(backend, uid, "medical", 2)
        _seed(backend, uid, "contact", 40)
        result = ActivityService(backend).overview(uid, "all", 30)
        assert result["analytics"]["total_updates"] == 2
        assert len(result["activities"]) == 1
        assert result["activities"][0]["time_ago"] == "2d ago"
        assert len(result["trend_heights"]) == 4

    def test_unknown_category_rejected(self, backend, session):
        with pytest.raises(ValidationError):
            ActivityService(backend).overview(session.user.id, "bogus")

    def test_non_positive_days_rejected(self, backend, session):
        with pytest.raises(ValidationError):
            ActivityService(backend).overview(session.user.id, "all", 0)

    def test_timeline_non_positive_days_rejected(self, backend, session):
        with pytest.raises(ValidationError):
            ActivityService(backend).timeline(session.user.id, "all", 0)


class TestActivityExport:
    LOGS = [
        {"id": "1", "action_description": "Added contact Smith, John", "category": "contact",
         "entity_type": "contact", "created_at": "2026-10-18T09:00:00+00:00"},
        {"id": "2", "action_description": "Printed emergency card", "category": "emergency",
         "entity_type": None, "created_at": "2026-10-17T09:00:00Z"},
    ]

    def test_filename(self):
        assert export_filename("csv", date(2026, 10, 19)) == "activity-log-2026-10-19.csv"

    def test_csv_rows(self):
        rows = list(csv.reader(io.StringIO(export_csv(self.LOGS))))
        assert rows[0] == CSV_HEADER
        assert rows[1] == ["2026-10-18", "Added contact Smith, John", "contact", "contact"]
        assert rows[2][3] == "N/A"

    def test_json_has_hash_and_version(self):
        doc = export_to_dict(self.LOGS, {"category": "all", "days": 30})
        assert doc["export_format_version"] == EXPORT_FORMAT_VERSION
        assert doc["export_metadata"]["count"] == 2
        payload = {k: v for k, v in doc.items() if k != "content_hash_sha256"}
        assert doc["content_hash_sha256"] == content_hash(payload)

    def test_json_string_parses(self):
        doc = json.loads(export_json(self.LOGS))
        assert len(doc["activities"]) == 2
        assert len(doc["content_hash_sha256"]) == 64
