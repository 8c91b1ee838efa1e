"""Tests for the decision audit trail."""

import json

from scopeguard import AccessDecision, Action, DecisionReason, Role
from scopeguard import audit
from scopeguard.audit import (
    AUDIT_MEMORY_LIMIT,
    get_audit_log,
    log_decision,
    shutdown_audit_logger,
    start_audit_logger,
)

from conftest import make_requester


def test_decisions_reach_file_and_memory(tmp_path):
    path = tmp_path / "logs" / "audit.jsonl"
    start_audit_logger(path)
    requester = make_requester(Role.TEACHER, user_id="u7")
    denied = AccessDecision(allowed=False, reason=DecisionReason.ROLE_NOT_PERMITTED, action=Action.EVALUATE)
    entry = log_decision("tr-1", requester, denied, resource_id="E1")
    shutdown_audit_logger()  # drains the queue

    assert entry["reason"] == "ROLE_NOT_PERMITTED"
    assert get_audit_log() == [entry]
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    stored = json.loads(lines[0])
    assert stored["trace_id"] == "tr-1"
    assert stored["user_id"] == "u7"
    assert stored["role"] == "TEACHER"
    assert stored["action"] == "evaluate"
    assert stored["allowed"] is False


def test_limit_returns_most_recent(tmp_path):
    start_audit_logger(tmp_path / "audit.jsonl")
    requester = make_requester(Role.ADMIN)
    ok = AccessDecision(allowed=True, reason=DecisionReason.OK)
    for i in range(5):
        log_decision(f"tr-{i}", requester, ok)
    shutdown_audit_logger()

    assert [e["trace_id"] for e in get_audit_log(limit=2)] == ["tr-3", "tr-4"]


def test_memory_keeps_only_the_most_recent_entries(tmp_path):
    start_audit_logger(tmp_path / "audit.jsonl")
    requester = make_requester(Role.ADMIN)
    ok = AccessDecision(allowed=True, reason=DecisionReason.OK)
    for i in range(AUDIT_MEMORY_LIMIT + 500):
        log_decision(f"tr-{i}", requester, ok)
    shutdown_audit_logger()

    entries = get_audit_log(limit=AUDIT_MEMORY_LIMIT * 2)
    assert len(entries) == AUDIT_MEMORY_LIMIT
    assert entries[0]["trace_id"] == "tr-500"
    assert entries[-1]["trace_id"] == f"tr-{AUDIT_MEMORY_LIMIT + 499}"
    # the file still has every entry
    assert len((tmp_path / "audit.jsonl").read_text(encoding="utf-8").splitlines()) == AUDIT_MEMORY_LIMIT + 500


def test_nothing_queued_while_stopped():
    requester = make_requester(Role.TEACHER)
    denied = AccessDecision(allowed=False, reason=DecisionReason.ROLE_NOT_PERMITTED)
    entry = log_decision("tr-stopped", requester, denied)

    assert entry["trace_id"] == "tr-stopped"
    assert audit._audit_queue.empty()
    assert get_audit_log() == []
