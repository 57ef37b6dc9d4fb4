"""
Validation of a time machine schedule against the requested backup policy.

Every field is compared independently so a single run reports every divergence.
"""
from datetime import datetime
from typing import List, Tuple

from dbaas_harness.config.logging import get_logger
from dbaas_harness.exceptions import ScheduleMismatchError
from dbaas_harness.models.ndb import ScheduleReport
from dbaas_harness.models.resources import TimeMachineInfo

logger = get_logger(__name__)

DAILY_SNAPSHOT_TIME_FORMAT = "%H:%M:%S"


def parse_daily_snapshot_time(text: str) -> Tuple[int, int, int]:
    """
    Split an ``HH:MM:SS`` wall-clock time into hour, minute and second.

    Raises:
        ValueError: If the text is not a valid time of day
    """
    parsed = datetime.strptime(text, DAILY_SNAPSHOT_TIME_FORMAT)
    return parsed.hour, parsed.minute, parsed.second


def _mismatch(field: str, expected, got) -> str:
    return f"for '{field}', expected: {expected}, got: {got}"


def validate_schedule(requested: TimeMachineInfo, reported: ScheduleReport) -> List[str]:
    """
    Compare a requested backup policy with the schedule NDB reports.

    Returns:
        One description per mismatching field; empty when everything matches or
        when no policy was requested
    """
    if not requested.policy_requested:
        logger.info("schedule_validation_skipped", sla=requested.sla_name)
        return []

    schedule = reported.schedule
    mismatches: List[str] = []

    if requested.name != reported.name:
        mismatches.append(_mismatch("name", requested.name, reported.name))

    if requested.description != reported.description:
        mismatches.append(_mismatch("description", requested.description, reported.description))

    if requested.sla_name != reported.sla.name:
        mismatches.append(_mismatch("slaName", requested.sla_name, reported.sla.name))

    time_of_day = schedule.snapshot_time_of_day
    got = (time_of_day.hours, time_of_day.minutes, time_of_day.seconds)
    try:
        expected = parse_daily_snapshot_time(requested.daily_snapshot_time)
    except ValueError:
        mismatches.append(
            _mismatch("dailySnapshotTime", f"HH:MM:SS, not '{requested.daily_snapshot_time}'", "%02d:%02d:%02d" % got)
        )
    else:
        if expected != got:
            mismatches.append(
                _mismatch("dailySnapshotTime", "%02d:%02d:%02d" % expected, "%02d:%02d:%02d" % got)
            )

    continuous = schedule.continuous_schedule
    if requested.snapshots_per_day != continuous.snapshots_per_day:
        mismatches.append(_mismatch("snapshotsPerDay", requested.snapshots_per_day, continuous.snapshots_per_day))

    if requested.log_catch_up_frequency != continuous.log_backup_interval:
        mismatches.append(
            _mismatch("logCatchUpFrequency", requested.log_catch_up_frequency, continuous.log_backup_interval)
        )

    if requested.weekly_snapshot_day != schedule.weekly_schedule.day_of_week:
        mismatches.append(
            _mismatch("weeklySnapshotDay", requested.weekly_snapshot_day, schedule.weekly_schedule.day_of_week)
        )

    if requested.monthly_snapshot_day != schedule.monthly_schedule.day_of_month:
        mismatches.append(
            _mismatch("monthlySnapshotDay", requested.monthly_snapshot_day, schedule.monthly_schedule.day_of_month)
        )

    return mismatches


def check_schedule(requested: TimeMachineInfo, reported: ScheduleReport) -> None:
    """
    Raise if the reported schedule differs from the requested policy.

    Raises:
        ScheduleMismatchError: Listing every mismatching field
    """
    mismatches = validate_schedule(requested, reported)
    if mismatches:
        error = ScheduleMismatchError(mismatches)
        logger.error(error.message, time_machine=reported.name)
        raise error
    logger.info("schedule_matches", time_machine=reported.name)
