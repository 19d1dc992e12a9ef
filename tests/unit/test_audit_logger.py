"""Tests for the audit logger."""

from __future__ import annotations

import json
from pathlib import Path

from src.audit.logger import AuditLogger
from src.models import AuditEventType
from tests.conftest import make_audit_event, make_config


def test_log_appends_json_line(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file))
    logger.log(make_audit_event(sender_id="user-1"))

    lines = log_file.read_text().strip().split("\n")
    assert len(lines) == 1
    parsed = json.loads(lines[0])
    assert parsed["event_type"] == "throttled"
    assert parsed["risk_level"] == "medium"
    assert parsed["sender_id"] == "user-1"
    assert "timestamp" in parsed


def test_log_multiple_events_append(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file))
    for i in range(3):
        logger.log(make_audit_event(action=f"action_{i}"))

    lines = log_file.read_text().strip().split("\n")
    assert [json.loads(line)["action"] for line in lines] == ["action_0", "action_1", "action_2"]


def test_log_creates_parent_directory(tmp_path: Path) -> None:
    log_file = tmp_path / "subdir" / "audit.jsonl"
    AuditLogger(log_path=str(log_file)).log(make_audit_event())
    assert log_file.exists()


def test_rotation_when_max_bytes_exceeded(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file), max_bytes=10, backup_count=2)
    for _ in range(4):
        logger.log(make_audit_event(event_type=AuditEventType.DUPLICATE_EVENT))

    assert log_file.exists()
    assert (tmp_path / "audit.jsonl.1").exists()
    assert (tmp_path / "audit.jsonl.2").exists()
    assert not (tmp_path / "audit.jsonl.3").exists()
    assert len(log_file.read_text().strip().split("\n")) == 1


def test_rotation_keeps_newest_backup_first(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file), max_bytes=10, backup_count=3)
    for i in range(3):
        logger.log(make_audit_event(action=f"action_{i}"))

    assert json.loads(log_file.read_text())["action"] == "action_2"
    assert json.loads((tmp_path / "audit.jsonl.1").read_text())["action"] == "action_1"
    assert json.loads((tmp_path / "audit.jsonl.2").read_text())["action"] == "action_0"


def test_zero_backups_truncates(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file), max_bytes=10, backup_count=0)
    logger.log(make_audit_event(action="first"))
    logger.log(make_audit_event(action="second"))

    assert json.loads(log_file.read_text())["action"] == "second"
    assert sorted(p.name for p in tmp_path.glob("audit.jsonl*")) == ["audit.jsonl"]


def test_from_config_uses_rotation_settings(tmp_path: Path) -> None:
    config = make_config(
        audit_log_path=str(tmp_path / "audit.jsonl"),
        audit_log_max_bytes=2048,
        audit_log_backup_count=7,
    )
    logger = AuditLogger.from_config(config)
    assert logger is not None
    assert logger.max_bytes == 2048
    assert logger.backup_count == 7


def test_from_config_disabled_without_path() -> None:
    assert AuditLogger.from_config(make_config()) is None
