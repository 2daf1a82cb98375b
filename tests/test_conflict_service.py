from datetime import timedelta
from zoneinfo import ZoneInfo

import pytest

from app.core.exceptions import InvalidInterval
from app.models.appointment import AppointmentStatus
from app.services.conflict_service import ConflictKind, check_conflict, is_within_schedule

from conftest import DOCTOR, MONDAY, PATIENT, at, make_appointment, make_block


class TestDoubleBooking:
    def test_no_existing_appointments(self):
        outcome = check_conflict(DOCTOR, at(MONDAY, "09:00"), at(MONDAY, "09:30"), [])
        assert outcome.kind is ConflictKind.NO_CONFLICT
        assert outcome.ok
        assert outcome.existing is None

    def test_partial_overlap_is_reported(self):
        existing = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"))
        outcome = check_conflict(DOCTOR, at(MONDAY, "09:15"), at(MONDAY, "09:45"), [existing])
        assert outcome.kind is ConflictKind.OVERLAP
        assert outcome.existing is existing

    def test_exact_duplicate_same_patient(self):
        existing = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"))
        outcome = check_conflict(
            DOCTOR, at(MONDAY, "09:00"), at(MONDAY, "09:30"), [existing], patient_id=PATIENT
        )
        assert outcome.kind is ConflictKind.EXACT_DUPLICATE
        assert outcome.existing is existing

    def test_same_interval_other_patient_is_overlap(self):
        existing = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"), patient_id="pat-2")
        outcome = check_conflict(
            DOCTOR, at(MONDAY, "09:00"), at(MONDAY, "09:30"), [existing], patient_id=PATIENT
        )
        assert outcome.kind is ConflictKind.OVERLAP

    def test_same_interval_without_patient_is_duplicate(self):
        existing = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"), patient_id="pat-2")
        outcome = check_conflict(DOCTOR, at(MONDAY, "09:00"), at(MONDAY, "09:30"), [existing])
        assert outcome.kind is ConflictKind.EXACT_DUPLICATE

    def test_duplicate_preferred_over_overlap(self):
        overlapping = make_appointment(at(MONDAY, "08:45"), at(MONDAY, "09:15"), patient_id="pat-2")
        duplicate = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"))
        outcome = check_conflict(
            DOCTOR, at(MONDAY, "09:00"), at(MONDAY, "09:30"), [overlapping, duplicate], patient_id=PATIENT
        )
        assert outcome.kind is ConflictKind.EXACT_DUPLICATE
        assert outcome.existing is duplicate

    def test_touching_is_not_overlap(self):
        existing = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"))
        outcome = check_conflict(DOCTOR, at(MONDAY, "09:30"), at(MONDAY, "10:00"), [existing])
        assert outcome.ok

    def test_cancelled_and_other_doctor_ignored(self):
        cancelled = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"), status=AppointmentStatus.CANCELLED)
        other_doctor = make_appointment(at(MONDAY, "09:00"), at(MONDAY, "09:30"), doctor_id="doc-2")
        outcome = check_conflict(DOCTOR, at(MONDAY, "09:00"), at(MONDAY, "09:30"), [cancelled, other_doctor])
        assert outcome.ok

    @pytest.mark.parametrize("minutes", [0, -30])
    def test_invalid_interval(self, minutes):
        start = at(MONDAY, "09:00")
        with pytest.raises(InvalidInterval):
            check_conflict(DOCTOR, start, start + timedelta(minutes=minutes), [])


class TestWorkingHours:
    def test_inside_block(self):
        outcome = check_conflict(
            DOCTOR, at(MONDAY, "09:00"), at(MONDAY, "09:30"), [], schedule_blocks=[make_block()]
        )
        assert outcome.ok

    def test_exactly_the_block(self):
        outcome = check_conflict(
            DOCTOR, at(MONDAY, "09:00"), at(MONDAY, "10:00"), [], schedule_blocks=[make_block()]
        )
        assert outcome.ok

    def test_sticking_out_of_block(self):
        outcome = check_conflict(
            DOCTOR, at(MONDAY, "09:45"), at(MONDAY, "10:15"), [], schedule_blocks=[make_block()]
        )
        assert outcome.kind is ConflictKind.OUTSIDE_WORKING_HOURS
        assert outcome.existing is None

    def test_spanning_two_adjacent_blocks_is_outside(self):
        blocks = [make_block(start="09:00", end="10:00"), make_block(start="10:00", end="11:00")]
        outcome = check_conflict(DOCTOR, at(MONDAY, "09:45"), at(MONDAY, "10:15"), [], schedule_blocks=blocks)
        assert outcome.kind is ConflictKind.OUTSIDE_WORKING_HOURS

    def test_second_block_of_the_day_matches(self):
        blocks = [make_block(start="09:00", end="10:00"), make_block(start="14:00", end="17:00")]
        outcome = check_conflict(DOCTOR, at(MONDAY, "15:00"), at(MONDAY, "16:00"), [], schedule_blocks=blocks)
        assert outcome.ok

    def test_other_weekday_only_is_outside(self):
        outcome = check_conflict(
            DOCTOR,
            at(MONDAY, "09:00"),
            at(MONDAY, "09:30"),
            [],
            schedule_blocks=[make_block(day_of_week=2)],
        )
        assert outcome.kind is ConflictKind.OUTSIDE_WORKING_HOURS

    def test_no_blocks_at_all_skips_check(self):
        outcome = check_conflict(DOCTOR, at(MONDAY, "23:00"), at(MONDAY, "23:30"), [], schedule_blocks=[])
        assert outcome.ok

    def test_no_blocks_still_checks_overlap(self):
        existing = make_appointment(at(MONDAY, "23:00"), at(MONDAY, "23:30"))
        outcome = check_conflict(
            DOCTOR, at(MONDAY, "23:15"), at(MONDAY, "23:45"), [existing], schedule_blocks=[]
        )
        assert outcome.kind is ConflictKind.OVERLAP

    def test_overlap_reported_before_working_hours(self):
        existing = make_appointment(at(MONDAY, "09:45"), at(MONDAY, "10:15"))
        outcome = check_conflict(
            DOCTOR, at(MONDAY, "09:50"), at(MONDAY, "10:20"), [existing], schedule_blocks=[make_block()]
        )
        assert outcome.kind is ConflictKind.OVERLAP

    def test_weekday_taken_in_reference_timezone(self):
        tz = ZoneInfo("America/New_York")
        # Tuesday 01:00 UTC is Monday 20:00 in New York
        block = make_block(day_of_week=1, start="19:00", end="21:00")
        start = at(MONDAY + timedelta(days=1), "01:00")
        assert is_within_schedule(start, start + timedelta(minutes=30), [block], tz) is True
        assert is_within_schedule(start, start + timedelta(minutes=30), [block]) is False
