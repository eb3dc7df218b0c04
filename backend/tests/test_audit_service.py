"""Tests for the best-effort audit recorder and its queries."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from certdesk.actor import OriginInfo
from certdesk.errors import StorageUnavailable
from certdesk.models.audit_log import AuditLog
from certdesk.pagination import PageRequest
from certdesk.services import user_service
from certdesk.services.audit_service import AuditFilters, AuditRecorder

ORIGIN = OriginInfo(ip_address="10.0.0.7", user_agent="pytest-agent", location="Pune")


def _broken_factory():
    raise OperationalError("connect", {}, Exception("database is down"))


class TestWrites:
    def test_record_view(self, recorder, actors):
        assert recorder.record_view(actors["admin"], "schools", "s-1", ORIGIN) == 1

        [entry] = recorder.find_by_entity_and_record("schools", "s-1")
        assert entry.action == "VIEW"
        assert entry.changed_by == actors["admin"].id
        assert entry.changed_by_username == "admin"
        assert entry.changed_by_name == "Asha Admin"
        assert (entry.ip_address, entry.user_agent, entry.location) == ("10.0.0.7", "pytest-agent", "Pune")

    def test_record_add_keeps_payload_snapshot(self, recorder, actors):
        recorder.record_add(actors["admin"], "schools", "s-1", ORIGIN, {"name": "ZP School", "udise_no": "123"})

        [entry] = recorder.find_by_entity_and_record("schools", "s-1")
        assert entry.action == "INSERT"
        assert json.loads(entry.notes) == {"name": "ZP School", "udise_no": "123"}

    def test_update_with_identical_payloads_writes_nothing(self, recorder, actors):
        payload = {"name": "ZP School", "district": "Pune", "year": 2024}
        assert recorder.record_update(actors["admin"], "schools", "s-1", ORIGIN, payload, dict(payload)) == 0
        assert recorder.find_by_entity_and_record("schools", "s-1") == []

    def test_update_writes_one_row_per_changed_field(self, recorder, actors):
        old = {"name": "ZP School", "district": "Pune", "taluka": "Haveli"}
        new = {"name": "ZP School", "district": "Satara", "taluka": "Wai"}

        assert recorder.record_update(actors["admin"], "schools", "s-1", ORIGIN, old, new) == 2

        entries = recorder.find_by_entity_and_record("schools", "s-1")
        changes = {e.field_name: (e.old_value, e.new_value) for e in entries}
        assert changes == {"district": ("Pune", "Satara"), "taluka": ("Haveli", "Wai")}

    def test_values_compare_by_stored_text(self, recorder, actors):
        assert recorder.record_update(actors["admin"], "students", "x", ORIGIN,
                                      {"certificate_year": 2024}, {"certificate_year": "2024"}) == 0

    def test_delete_login_logout(self, recorder, actors):
        recorder.record_delete(actors["admin"], "schools", "s-1", ORIGIN)
        recorder.record_login(actors["super"], ORIGIN, "password")
        recorder.record_logout(actors["super"], ORIGIN)

        assert recorder.find_by_entity_and_record("schools", "s-1")[0].action == "DELETE"
        notes = {e.action: e.notes for e in recorder.find_by_entity_and_record("users", actors["super"].id)}
        assert notes == {"LOGIN": "Login method: password", "LOGOUT": "User logged out"}

    def test_status_change_goes_to_history(self, recorder, actors):
        recorder.record_status_change(actors["super"], "schools", "s-1", "in_review", "accepted", "Looks good")

        [row] = recorder.status_history("schools", "s-1")
        assert (row.old_status, row.new_status, row.reason) == ("in_review", "accepted", "Looks good")
        assert row.changed_by_username == "super"


class TestWriteFailures:
    def test_unreachable_store_is_swallowed(self, actors, caplog):
        recorder = AuditRecorder(_broken_factory)

        assert recorder.record_view(actors["admin"], "schools", "s-1", ORIGIN) == 0
        assert recorder.record_update(actors["admin"], "schools", "s-1", ORIGIN, {"a": 1}, {"a": 2}) == 0
        assert recorder.record_status_change(actors["admin"], "schools", "s-1", "draft", "in_review") == 0
        assert "Audit write failed" in caplog.text

    def test_missing_audit_table_is_swallowed(self, recorder, actors, engine):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE audit_logs"))

        assert recorder.record_login(actors["admin"], ORIGIN) == 0


class TestQueries:
    def _seed(self, recorder, actors):
        recorder.record_view(actors["admin"], "schools", "s-1", ORIGIN)
        recorder.record_update(actors["admin"], "schools", "s-1", ORIGIN, {"name": "A"}, {"name": "B"})
        recorder.record_view(actors["super"], "students", "t-1", ORIGIN)
        recorder.record_login(actors["super"], ORIGIN)

    def test_newest_first(self, recorder, actors):
        self._seed(recorder, actors)
        entries = recorder.find_by_entity_and_record("schools", "s-1")
        assert [e.action for e in entries] == ["UPDATE", "VIEW"]

    def test_find_all_filters(self, recorder, actors):
        self._seed(recorder, actors)

        assert recorder.find_all().total == 4
        assert recorder.find_all(AuditFilters(table_name="schools")).total == 2
        assert recorder.find_all(AuditFilters(action="view")).total == 2
        assert recorder.find_all(AuditFilters(changed_by=actors["super"].id)).total == 2
        assert recorder.find_all(AuditFilters(record_id="t-1")).total == 1

    def test_find_all_date_range(self, recorder, actors):
        self._seed(recorder, actors)
        now = datetime.now(timezone.utc)

        assert recorder.find_all(AuditFilters(start_date=now - timedelta(hours=1))).total == 4
        assert recorder.find_all(AuditFilters(end_date=now - timedelta(days=1))).total == 0

    def test_offset_bounds_compare_in_utc(self, recorder, actors):
        self._seed(recorder, actors)
        ist = timezone(timedelta(hours=5, minutes=30))
        hour_ago = (datetime.now(timezone.utc) - timedelta(hours=1)).astimezone(ist)

        assert recorder.find_all(AuditFilters(start_date=hour_ago)).total == 4
        assert recorder.find_all(AuditFilters(end_date=hour_ago)).total == 0

    def test_ties_on_timestamp_order_by_id(self, db, recorder):
        stamp = datetime(2024, 6, 1, 10, 0, 0)
        for row_id in ("00000000-aaaa", "00000000-cccc", "00000000-bbbb"):
            db.add(AuditLog(id=row_id, table_name="schools", record_id="s-9", action="VIEW", changed_at=stamp))
        db.commit()

        entries = recorder.find_by_entity_and_record("schools", "s-9")
        assert [e.id for e in entries] == ["00000000-cccc", "00000000-bbbb", "00000000-aaaa"]
        assert [e.id for e in recorder.find_all(AuditFilters(record_id="s-9")).items] == [e.id for e in entries]

    def test_find_all_paginates(self, recorder, actors):
        self._seed(recorder, actors)
        page = recorder.find_all(page=PageRequest(page=2, limit=3))
        assert len(page.items) == 1
        assert page.total == 4
        assert page.total_pages == 2

    def test_reads_surface_storage_unavailable(self):
        recorder = AuditRecorder(_broken_factory)
        with pytest.raises(StorageUnavailable):
            recorder.find_all()


class TestActorRemoval:
    def test_deleting_an_account_keeps_its_entries(self, db, recorder, actors):
        recorder.record_view(actors["admin2"], "schools", "s-1", ORIGIN)
        recorder.record_status_change(actors["admin2"], "schools", "s-1", "draft", "in_review")

        assert user_service.delete_user(db, actors["super"], actors["admin2"].id).ok

        [entry] = recorder.find_by_entity_and_record("schools", "s-1")
        assert entry.changed_by is None
        assert entry.changed_by_username is None
        [history] = recorder.status_history("schools", "s-1")
        assert history.changed_by is None
        assert db.query(AuditLog).count() == 1
