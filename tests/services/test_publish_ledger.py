"""Tests for the publish state ledger."""

import json
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from journeysync.errors import LedgerUnavailableError, ValidationError
from journeysync.services.publish_ledger import PublishLedger, compute_content_hash

PAYLOAD = {"name": "Welcome", "subject": "Hi", "body": "<p>Hello</p>"}


class TestContentHash:
    """Canonical hashing."""

    def test_key_order_does_not_matter(self):
        reordered = {"body": "<p>Hello</p>", "subject": "Hi", "name": "Welcome"}
        assert compute_content_hash(PAYLOAD) == compute_content_hash(reordered)

    def test_volatile_keys_ignored_at_any_depth(self):
        noisy = {**PAYLOAD, "updated_at": "2024-01-01", "locationId": "loc-9"}
        assert compute_content_hash(noisy) == compute_content_hash(PAYLOAD)
        nested = {"outer": {"x": 1, "created_at": "now"}}
        assert compute_content_hash(nested) == compute_content_hash({"outer": {"x": 1}})

    def test_content_change_changes_hash(self):
        assert compute_content_hash(PAYLOAD) != compute_content_hash({**PAYLOAD, "subject": "Hey"})

    def test_hex_digest(self):
        digest = compute_content_hash(PAYLOAD)
        assert len(digest) == 64
        int(digest, 16)


class TestLedgerRecords:
    """should_publish and record_publish."""

    def test_never_published_should_publish(self, db_session: Session):
        assert PublishLedger(db_session).should_publish("tp-1", PAYLOAD) is True

    def test_unchanged_content_skipped_after_record(self, db_session: Session):
        ledger = PublishLedger(db_session)
        entry = ledger.record_publish("tp-1", PAYLOAD, "tmpl-1", "email", name="Welcome")

        assert entry.remote_template_id == "tmpl-1"
        assert entry.content_hash == entry.remote_hash
        assert ledger.should_publish("tp-1", PAYLOAD) is False
        assert ledger.should_publish("tp-1", {**PAYLOAD, "body": "<p>Changed</p>"}) is True

    def test_sent_payload_drives_remote_hash(self, db_session: Session):
        ledger = PublishLedger(db_session)
        sent = {**PAYLOAD, "subject": "Remote subject kept"}
        entry = ledger.record_publish("tp-1", PAYLOAD, "tmpl-1", "email", sent_payload=sent)

        assert entry.content_hash == compute_content_hash(PAYLOAD)
        assert entry.remote_hash == compute_content_hash(sent)

    def test_update_without_id_keeps_existing_id(self, db_session: Session):
        ledger = PublishLedger(db_session)
        ledger.record_publish("tp-1", PAYLOAD, "tmpl-1", "email")
        ledger.record_publish("tp-1", {**PAYLOAD, "body": "new"}, None, "email")

        assert ledger.get("tp-1").remote_template_id == "tmpl-1"

    def test_get_many_and_forget(self, db_session: Session):
        ledger = PublishLedger(db_session)
        ledger.record_publish("tp-1", PAYLOAD, "tmpl-1", "email")
        ledger.record_publish("tp-2", {"name": "T", "body": "b"}, "tmpl-2", "sms")

        assert set(ledger.get_many(["tp-1", "tp-2", "tp-3"])) == {"tp-1", "tp-2"}
        assert ledger.forget("tp-1") is True
        assert ledger.forget("tp-1") is False
        assert [e.touchpoint_id for e in ledger.entries()] == ["tp-2"]

    def test_lock_is_per_touchpoint(self, db_session: Session):
        ledger = PublishLedger(db_session)
        assert ledger.lock_for("a") is ledger.lock_for("a")
        assert ledger.lock_for("a") is not ledger.lock_for("b")

    def test_read_failure_raises_ledger_unavailable(self, db_session: Session):
        ledger = PublishLedger(db_session)
        with patch.object(db_session, "get", side_effect=OperationalError("SELECT", {}, Exception("locked"))):
            with pytest.raises(LedgerUnavailableError):
                ledger.should_publish("tp-1", PAYLOAD)


class TestImportStateFile:
    """Legacy JSON import."""

    def test_imports_entries_with_empty_remote_hash(self, db_session: Session, tmp_path):
        state = {
            "tp-1": {
                "hash": "d41d8cd98f00b204e9800998ecf8427e",
                "ghlTemplateId": "tmpl-1",
                "type": "EMAIL",
                "name": "Welcome",
                "lastPublished": "2024-05-01T00:00:00Z",
            },
            "tp-2": "garbage",
        }
        path = tmp_path / "publish-state.json"
        path.write_text(json.dumps(state))

        ledger = PublishLedger(db_session)
        assert ledger.import_state_file(path) == 1

        entry = ledger.get("tp-1")
        assert entry.remote_template_id == "tmpl-1"
        assert entry.template_kind == "email"
        assert entry.remote_hash == ""
        assert ledger.should_publish("tp-1", PAYLOAD) is True

    def test_existing_entries_kept(self, db_session: Session, tmp_path):
        ledger = PublishLedger(db_session)
        ledger.record_publish("tp-1", PAYLOAD, "tmpl-new", "email")
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"tp-1": {"hash": "x", "ghlTemplateId": "tmpl-old"}}))

        assert ledger.import_state_file(path) == 0
        assert ledger.get("tp-1").remote_template_id == "tmpl-new"

    def test_missing_file(self, db_session: Session, tmp_path):
        with pytest.raises(ValidationError, match="not found"):
            PublishLedger(db_session).import_state_file(tmp_path / "nope.json")

    def test_non_object_rejected(self, db_session: Session, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValidationError):
            PublishLedger(db_session).import_state_file(path)
