"""Tests for security event logging."""

import json
import logging

import pytest

from conftest import FAST_KDF, MASTER_PASSWORD
from credvault.auth import MasterAuthority
from credvault.errors import WrongPassword
from credvault.events import AUDIT_LOGGER_NAME, configure_audit_log, log_security_event, read_events


@pytest.fixture
def audit_file(tmp_path):
    path = str(tmp_path / "logs" / "audit.jsonl")
    configure_audit_log(path)
    yield path
    configure_audit_log(None)


def _events(caplog):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == AUDIT_LOGGER_NAME]


class TestSecurityEvents:

    def test_event_shape(self, caplog):
        caplog.set_level(logging.INFO, logger=AUDIT_LOGGER_NAME)
        log_security_event("vault_open", "SUCCESS", {"entries": 3})

        event = _events(caplog)[-1]
        assert event["event_type"] == "vault_open"
        assert event["status"] == "SUCCESS"
        assert event["details"] == {"entries": 3}
        assert event["source"] == "credvault"
        assert "timestamp" in event

    def test_login_events(self, caplog, record_path):
        caplog.set_level(logging.INFO, logger=AUDIT_LOGGER_NAME)
        authority = MasterAuthority(record_path, kdf_params=FAST_KDF)
        authority.enroll(MASTER_PASSWORD)
        authority.lock()

        with pytest.raises(WrongPassword):
            authority.login("not the password")
        authority.login(MASTER_PASSWORD)
        authority.lock()

        statuses = [(e["event_type"], e["status"]) for e in _events(caplog)]
        assert ("enroll", "SUCCESS") in statuses
        assert ("login_attempt", "FAILURE") in statuses
        assert ("login_attempt", "SUCCESS") in statuses
        assert ("lock", "SUCCESS") in statuses

    def test_no_secrets_logged(self, caplog, vault):
        caplog.set_level(logging.DEBUG)
        entry_id = vault.add("GitHub", "octocat", "hunter2-secret")
        vault.reveal(entry_id)
        vault.change_master_password(MASTER_PASSWORD, "brand new master")

        text = caplog.text
        assert "hunter2-secret" not in text
        assert MASTER_PASSWORD not in text
        assert "brand new master" not in text

    def test_audit_file(self, audit_file):
        log_security_event("lock", "SUCCESS")
        log_security_event("vault_reset", "SUCCESS", {"scope": "all"})

        events = read_events(audit_file)
        assert [e["event_type"] for e in events] == ["lock", "vault_reset"]

    def test_read_events_limit(self, audit_file):
        for i in range(5):
            log_security_event("lock", "SUCCESS", {"n": i})
        assert [e["details"]["n"] for e in read_events(audit_file, limit=2)] == [3, 4]

    def test_read_missing_file(self, tmp_path):
        assert read_events(str(tmp_path / "missing.jsonl")) == []
