"""
Tests for time machine schedule validation.
"""
import pytest

from dbaas_harness.exceptions import ScheduleMismatchError
from dbaas_harness.models.ndb import TimeMachineResponse
from dbaas_harness.models.resources import TimeMachineInfo
from dbaas_harness.services.schedule_validator import (
    check_schedule,
    parse_daily_snapshot_time,
    validate_schedule,
)


@pytest.fixture
def requested() -> TimeMachineInfo:
    return TimeMachineInfo.model_validate(
        {
            "name": "db_TM",
            "description": "TM for db",
            "sla": "DEFAULT_OOB_BRASS_SLA",
            "dailySnapshotTime": "12:12:12",
            "snapshotsPerDay": 4,
            "logCatchUpFrequency": 90,
            "weeklySnapshotDay": "WEDNESDAY",
            "monthlySnapshotDay": 24,
            "quarterlySnapshotMonth": "Jan",
        }
    )


def _reported(**overrides) -> TimeMachineResponse:
    payload = {
        "id": "tm-1",
        "name": "db_TM",
        "description": "TM for db",
        "sla": {"name": "DEFAULT_OOB_BRASS_SLA"},
        "schedule": {
            "snapshotTimeOfDay": {"hours": 12, "minutes": 12, "seconds": 12},
            "continuousSchedule": {"snapshotsPerDay": 4, "logBackupInterval": 90},
            "weeklySchedule": {"dayOfWeek": "WEDNESDAY"},
            "monthlySchedule": {"dayOfMonth": 24},
        },
    }
    for key, value in overrides.items():
        if key == "time_of_day":
            payload["schedule"]["snapshotTimeOfDay"] = value
        elif key == "sla":
            payload["sla"] = {"name": value}
        elif key == "day_of_month":
            payload["schedule"]["monthlySchedule"] = {"dayOfMonth": value}
        else:
            payload[key] = value
    return TimeMachineResponse.model_validate(payload)


def test_parse_daily_snapshot_time():
    assert parse_daily_snapshot_time("12:34:56") == (12, 34, 56)
    with pytest.raises(ValueError):
        parse_daily_snapshot_time("25:00")


def test_matching_schedule_has_no_mismatches(requested):
    assert validate_schedule(requested, _reported()) == []


def test_daily_time_mismatch_is_single_entry(requested):
    mismatches = validate_schedule(requested, _reported(time_of_day={"hours": 13, "minutes": 12, "seconds": 12}))
    assert len(mismatches) == 1
    assert "'dailySnapshotTime'" in mismatches[0]


def test_malformed_daily_time_is_recorded_not_raised(requested):
    requested.daily_snapshot_time = "noon"
    mismatches = validate_schedule(requested, _reported())
    assert len(mismatches) == 1
    assert "'dailySnapshotTime'" in mismatches[0]


def test_independent_mismatches_are_all_reported(requested):
    mismatches = validate_schedule(
        requested, _reported(name="other_TM", sla="GOLD", day_of_month=1)
    )
    assert len(mismatches) == 3
    assert mismatches[0] == "for 'name', expected: db_TM, got: other_TM"
    assert mismatches[1] == "for 'slaName', expected: DEFAULT_OOB_BRASS_SLA, got: GOLD"
    assert mismatches[2] == "for 'monthlySnapshotDay', expected: 24, got: 1"


@pytest.mark.parametrize("sla", ["", "NONE"])
def test_no_policy_requested_skips_validation(requested, sla):
    requested.sla_name = sla
    assert validate_schedule(requested, _reported(name="anything")) == []


def test_check_schedule_raises_with_every_mismatch(requested):
    with pytest.raises(ScheduleMismatchError) as exc_info:
        check_schedule(requested, _reported(description="changed", sla="GOLD"))

    error = exc_info.value
    assert len(error.mismatches) == 2
    assert error.message.startswith("check_schedule() failed! Found invalid properties")


def test_check_schedule_passes_on_match(requested):
    check_schedule(requested, _reported())
