"""Tests for AuditLogger: best-effort writes, filtering, pagination and retention."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from tidegate.core.deadline import Deadline
from tidegate.exceptions import AuditLogNotFoundError
from tidegate.models import AuditLog
from tidegate.schemas.audit import AuditLogFilters, AuditStatus
from tidegate.schemas.pagination import PaginationParams
from tidegate.services import AuditLogger


@pytest.fixture()
def audit(db, clock):
    return AuditLogger(db, clock=clock)


def _seed(audit, clock):
    audit.record("u1", "role_create", "role", resource_id="r1", details={"name": "ops"})
    clock.advance(minutes=1)
    audit.record("u1", "grant_assign", "grant", cluster_name="prod")
    clock.advance(minutes=1)
    audit.record("u2", "login_failed", "session", status=AuditStatus.FAILED)
    clock.advance(minutes=1)
    audit.record("u2", "role_delete", "role", status="denied", cluster_name="prod")


class TestRecord:

    def test_record_persists_fields(self, audit):
        entry = audit.record(
            "u1", "role_create", "role", resource_id="r1",
            details={"name": "ops"}, ip_address="10.0.0.1", user_agent="pytest",
        )
        stored = audit.get(entry.id)
        assert stored.action == "role_create"
        assert stored.details == {"name": "ops"}
        assert stored.status == "success"
        assert stored.ip_address == "10.0.0.1"

    def test_record_never_raises(self, audit, monkeypatch):
        def broken_add(*args, **kwargs):
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("database is locked"))

        monkeypatch.setattr(audit.repo, "add", broken_add)
        assert audit.record("u1", "role_create", "role") is None

    def test_cancelled_deadline_drops_entry(self, db, audit):
        deadline = Deadline()
        deadline.cancel()
        assert audit.record("u1", "role_create", "role", deadline=deadline) is None
        assert db.query(AuditLog).count() == 0

    def test_invalid_status_is_dropped(self, db, audit):
        assert audit.record("u1", "role_create", "role", status="maybe") is None
        assert db.query(AuditLog).count() == 0

    def test_get_missing(self, audit):
        with pytest.raises(AuditLogNotFoundError):
            audit.get(999999)


class TestList:

    def test_newest_first(self, audit, clock):
        _seed(audit, clock)
        page = audit.list()
        assert [e.action for e in page.items] == ["role_delete", "login_failed", "grant_assign", "role_create"]
        assert page.total == 4

    def test_filters_combine(self, audit, clock):
        _seed(audit, clock)
        assert audit.list(AuditLogFilters(user_id="u2")).total == 2
        assert audit.list(AuditLogFilters(resource_type="role")).total == 2
        assert audit.list(AuditLogFilters(cluster_name="prod", user_id="u2")).total == 1
        denied = audit.list(AuditLogFilters(status=AuditStatus.DENIED))
        assert [e.action for e in denied.items] == ["role_delete"]

    def test_action_is_case_insensitive_substring(self, audit, clock):
        _seed(audit, clock)
        assert audit.list(AuditLogFilters(action="ROLE_")).total == 2
        assert audit.list(AuditLogFilters(action="%")).total == 0

    def test_time_bounds_are_inclusive(self, audit, clock):
        start = clock.now
        _seed(audit, clock)
        page = audit.list(AuditLogFilters(
            start_time=start + timedelta(minutes=1),
            end_time=start + timedelta(minutes=2),
        ))
        assert [e.action for e in page.items] == ["login_failed", "grant_assign"]

    def test_pages_have_no_duplicates_or_gaps(self, audit):
        # Same timestamp for every entry, so only the id tiebreak orders them.
        for i in range(7):
            audit.record("u1", f"action_{i}", "role")
        seen = []
        for page_number in range(1, 5):
            page = audit.list(pagination=PaginationParams(page=page_number, page_size=2))
            seen.extend(e.id for e in page.items)
        assert len(seen) == 7
        assert len(set(seen)) == 7
        assert seen == sorted(seen, reverse=True)


class TestRetention:

    def test_delete_old_logs(self, db, audit, clock):
        audit.record("u1", "old", "role")
        clock.advance(days=10)
        cutoff = clock.now
        audit.record("u1", "new", "role")
        assert audit.delete_old_logs(cutoff) == 1
        assert [e.action for e in db.query(AuditLog).all()] == ["new"]

    def test_purge_old_entries(self, db, audit, clock):
        audit.record("u1", "old", "role")
        clock.advance(days=91)
        audit.record("u1", "new", "role")
        assert audit.purge_old_entries(90) == 1
        assert db.query(AuditLog).count() == 1

    def test_purge_disabled(self, audit, clock):
        audit.record("u1", "old", "role")
        clock.advance(days=1000)
        assert audit.purge_old_entries(0) == 0
