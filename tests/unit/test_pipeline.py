from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from backoffice_import.config.loader import ImportConfig
from backoffice_import.db.record_store import InMemoryRecordStore
from backoffice_import.entities.registry import EntityRegistry, in_memory_registry
from backoffice_import.models.options import ExecutionOptions
from backoffice_import.models.session import EntityType, SessionStatus
from backoffice_import.services.errors import PipelineError, SessionExpired, SessionNotMapped, StoreUnavailable
from backoffice_import.services.pipeline import ImportPipeline
from backoffice_import.services.session_store import InMemorySessionStore

CHECK_IN_HEADERS = ["First Name", "Last Name", "Card Number", "Date/Time", "Status"]
CHECK_IN_MAPPING = {"first_name": 0, "last_name": 1, "card_number": 2, "date_time": 3, "status": 4}


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


def test_injected_session_store_is_used(make_csv, lead_headers, lead_rows):
    clock = FakeClock()
    store = InMemorySessionStore(ttl=timedelta(minutes=5), clock=clock)
    pipeline = ImportPipeline(in_memory_registry(), store)
    assert pipeline.sessions is store

    upload = pipeline.upload("lead", make_csv(lead_headers, lead_rows(1)), "text/csv")
    assert len(store) == 1
    clock.now += timedelta(minutes=6)
    with pytest.raises(SessionExpired):
        pipeline.get_session(upload.session_id)


def test_from_config_applies_session_ttl():
    pipeline = ImportPipeline.from_config(ImportConfig(session_ttl_minutes=5), in_memory_registry())
    assert pipeline.sessions.ttl == timedelta(minutes=5)


def test_options_from_dict():
    options = ExecutionOptions.from_dict({
        "updateExisting": False,
        "defaults": {"status": "NEW", "source": None},
        "manualMatches": {"Ann|Lee": 42},
    })
    assert options.update_existing is False
    assert options.defaults == {"status": "NEW"}
    assert options.manual_matches == {"Ann|Lee": "42"}
    assert ExecutionOptions.from_dict(None) == ExecutionOptions()


@pytest.fixture()
def staffed(pipeline, registry):
    staff = registry.store(EntityType.EMPLOYEE)
    ann = staff.create("ann@example.com", {"email": "ann@example.com", "first_name": "Ann", "last_name": "Lee", "card_number": "C-1"})
    ben = staff.create("ben@example.com", {"email": "ben@example.com", "first_name": "Ben", "last_name": "Ito"})
    return pipeline, ann, ben


def _check_in_session(pipeline, make_csv, rows):
    upload = pipeline.upload("check-in-out", make_csv(CHECK_IN_HEADERS, rows), "text/csv")
    pipeline.save_mapping(upload.session_id, CHECK_IN_MAPPING)
    return upload.session_id


ROWS = [
    ["Ann", "Lee", "C-1", "2024-03-01 09:00", "In"],
    ["Benjamin", "Ito", "", "2024-03-01 09:02", "In"],
    ["Benjamin", "Ito", "", "2024-03-01 17:30", "Out"],
    ["Zed", "Nobody", "Z-9", "2024-03-01 09:10", "In"],
    ["Bad", "Row", "", "not a date", "In"],
]


def test_unmatched_employees_lists_each_key_once(staffed, make_csv):
    pipeline, _, _ = staffed
    session_id = _check_in_session(pipeline, make_csv, ROWS)
    assert pipeline.unmatched_employees(session_id) == ["Benjamin|Ito", "Zed|Nobody|Z-9"]
    assert pipeline.get_session(session_id).status is SessionStatus.MAPPED


def test_manual_matches_resolve_unmatched_rows(staffed, make_csv, registry):
    pipeline, _, ben = staffed
    session_id = _check_in_session(pipeline, make_csv, ROWS)
    matches = {"Benjamin Ito": ben}
    assert pipeline.unmatched_employees(session_id, matches) == ["Zed|Nobody|Z-9"]

    summary = pipeline.execute(session_id, ExecutionOptions(manual_matches=matches))
    assert summary.created == 3
    assert [e.row_index for e in summary.errors] == [4, 5]
    events = registry.store(EntityType.CHECK_IN_OUT).records()
    assert sum(1 for e in events if e["employee_id"] == ben) == 2


def test_unmatched_employees_needs_a_mapping(staffed, make_csv):
    pipeline, _, _ = staffed
    upload = pipeline.upload("check-in-out", make_csv(CHECK_IN_HEADERS, ROWS), "text/csv")
    with pytest.raises(SessionNotMapped):
        pipeline.unmatched_employees(upload.session_id)


def test_unmatched_employees_only_for_check_ins(pipeline, make_csv, lead_headers, lead_rows, lead_mapping):
    upload = pipeline.upload("lead", make_csv(lead_headers, lead_rows(1)), "text/csv")
    pipeline.save_mapping(upload.session_id, lead_mapping)
    with pytest.raises(PipelineError):
        pipeline.unmatched_employees(upload.session_id)


def test_unmatched_employees_without_employee_store(make_csv):
    registry = EntityRegistry(stores={EntityType.CHECK_IN_OUT: InMemoryRecordStore()})
    pipeline = ImportPipeline(registry)
    session_id = _check_in_session(pipeline, make_csv, ROWS[:1])
    with pytest.raises(StoreUnavailable):
        pipeline.unmatched_employees(session_id)
