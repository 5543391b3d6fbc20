"""Tests for the safety audit log."""

import tempfile
from pathlib import Path

import pytest

from aimate.safety.audit_log import SafetyAuditLog


def test_record_and_filter():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = SafetyAuditLog(Path(tmpdir))
        log.record("distress_flagged", "c1", "mental-health-safety", {"distress_level": "elevated"})
        log.record("crisis_intervention", "c1", "mental-health-safety")
        log.record("response_blocked", "c2")

        assert len(log.get_events()) == 3
        newest = log.get_events(conversation_id="c1")
        assert [e.action for e in newest] == ["crisis_intervention", "distress_flagged"]
        flagged = log.get_events(action="distress_flagged")
        assert flagged[0].details == {"distress_level": "elevated"}
        assert len(log.get_events(limit=1)) == 1


def test_entries_persist_as_jsonl():
    with tempfile.TemporaryDirectory() as tmpdir:
        SafetyAuditLog(Path(tmpdir)).record("response_blocked", "c1")
        files = list(Path(tmpdir).glob("*.jsonl"))
        assert len(files) == 1
        assert len(SafetyAuditLog(Path(tmpdir)).get_events()) == 1


def test_corrupt_lines_are_skipped():
    with tempfile.TemporaryDirectory() as tmpdir:
        log = SafetyAuditLog(Path(tmpdir))
        log.record("response_blocked", "c1")
        (Path(tmpdir) / "2000-01-01.jsonl").write_text("not json\n{\"bogus\": 1}\n")
        assert len(log.get_events()) == 1


def test_unknown_action_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ValueError):
            SafetyAuditLog(Path(tmpdir)).record("deleted_everything", "c1")
