"""
Tests for stall detection.

Tests:
- Threshold scales with unit count above the floor
- Old RUNNING runs become FAILED/STALLED
- Young, finished and racing runs are left alone
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest
from unittest.mock import patch

FLOOR = 900.0
PER_UNIT = 60.0


@pytest.fixture
def sweep():
    from dlc_review.workers.stall_sweep import StallSweep
    return StallSweep(floor_seconds=FLOOR, seconds_per_unit=PER_UNIT)


class TestStallThreshold:

    @pytest.mark.parametrize("units,expected", [
        (0, 900.0),
        (1, 900.0),
        (15, 900.0),
        (16, 960.0),
        (100, 6000.0),
    ])
    def test_threshold(self, units, expected):
        from dlc_review.workers.stall_sweep import stall_threshold_seconds

        assert stall_threshold_seconds(units, FLOOR, PER_UNIT) == expected


class TestStallSweep:

    def test_old_running_run_marked_stalled(self, app, sweep, make_submission, make_verification):
        from dlc_review.web.db import db
        from dlc_review.web.db.models import Submission, Verification
        from dlc_review.web.db.models.base import utcnow

        now = utcnow()
        submission_id = make_submission()
        submission = Submission.get(submission_id)
        submission.status = "UNDER_REVIEW"
        db.session.commit()
        verification_id = make_verification(
            submission_id, status="RUNNING",
            started_at=now - timedelta(seconds=FLOOR * 10),
            current_step="EVALUATE_CONTENT",
        )

        stalled = sweep.sweep(now=now)

        assert stalled == [verification_id]
        verification = Verification.find_by_id(verification_id)
        assert verification.status == "FAILED"
        assert verification.error_code == "STALLED"
        assert "EVALUATE_CONTENT" in verification.error_message
        assert verification.error_code_consistent()
        assert Submission.get(submission_id).status == "SUBMITTED"
        assert Verification.find_by_status_and_error_code("FAILED", "STALLED")[0].id == verification_id

    def test_young_run_left_alone(self, app, sweep, make_submission, make_verification):
        from dlc_review.web.db.models import Verification
        from dlc_review.web.db.models.base import utcnow

        now = utcnow()
        verification_id = make_verification(
            make_submission(), status="RUNNING", started_at=now - timedelta(seconds=FLOOR / 2),
        )

        assert sweep.sweep(now=now) == []
        assert Verification.find_by_id(verification_id).status == "RUNNING"

    def test_threshold_grows_with_units(self, app, sweep, make_submission, make_verification):
        from dlc_review.web.db.models import Verification
        from dlc_review.web.db.models.base import utcnow

        now = utcnow()
        # 30 units -> 1800s threshold; 1000s old is past the floor but not stalled
        submission_id = make_submission(messages=[f"message {i}" for i in range(30)])
        verification_id = make_verification(
            submission_id, status="RUNNING", started_at=now - timedelta(seconds=1000),
        )

        assert sweep.sweep(now=now) == []
        assert Verification.find_by_id(verification_id).status == "RUNNING"

        assert sweep.sweep(now=now + timedelta(seconds=900)) == [verification_id]

    def test_finished_runs_ignored(self, app, sweep, make_submission, make_verification):
        from dlc_review.web.db.models import Verification
        from dlc_review.web.db.models.base import utcnow

        now = utcnow()
        old = now - timedelta(seconds=FLOOR * 10)
        completed_id = make_verification(make_submission(), status="COMPLETED", started_at=old)
        failed_id = make_verification(
            make_submission(), status="FAILED", started_at=old, error_code="TIMEOUT",
        )

        assert sweep.sweep(now=now) == []
        assert Verification.find_by_id(completed_id).status == "COMPLETED"
        assert Verification.find_by_id(failed_id).error_code == "TIMEOUT"

    def test_run_completed_before_write_is_not_overwritten(self, app, sweep, make_submission, make_verification):
        """The sweep saw RUNNING, but the run completed before the sweep's write."""
        from dlc_review.web.db.models import Verification
        from dlc_review.web.db.models.base import utcnow

        now = utcnow()
        started_at = now - timedelta(seconds=FLOOR * 10)
        submission_id = make_submission()
        verification_id = make_verification(submission_id, status="RUNNING", started_at=started_at)
        stale = Verification.find_by_id(verification_id)
        stale_snapshot = SimpleNamespace(
            id=verification_id, version=stale.version, status="RUNNING", current_step="ASSEMBLE_REPORT",
        )

        # The run finishes
        assert Verification.compare_and_set(
            verification_id, stale.version, "RUNNING", status="COMPLETED", completed_at=now,
        )

        with patch.object(Verification, "reload", return_value=stale_snapshot):
            swapped = sweep.reclassify(verification_id, submission_id, started_at, now)

        assert swapped is False
        verification = Verification.find_by_id(verification_id)
        assert verification.status == "COMPLETED"
        assert verification.error_code is None

    def test_sweep_is_repeatable(self, app, sweep, make_submission, make_verification):
        from dlc_review.web.db.models import Verification
        from dlc_review.web.db.models.base import utcnow

        now = utcnow()
        verification_id = make_verification(
            make_submission(), status="RUNNING", started_at=now - timedelta(seconds=FLOOR * 10),
        )

        assert sweep.sweep(now=now) == [verification_id]
        version = Verification.find_by_id(verification_id).version
        assert sweep.sweep(now=now) == []
        assert Verification.find_by_id(verification_id).version == version

    def test_run_exactly_at_threshold_is_not_stalled(self, app, sweep, make_submission, make_verification):
        from dlc_review.web.db.models import Verification
        from dlc_review.web.db.models.base import utcnow

        now = utcnow()
        # 20 units -> 1200s threshold
        submission_id = make_submission(messages=[f"message {i}" for i in range(20)])
        verification_id = make_verification(
            submission_id, status="RUNNING", started_at=now - timedelta(seconds=1200),
        )

        assert sweep.sweep(now=now) == []
        assert Verification.find_by_id(verification_id).status == "RUNNING"
        assert sweep.sweep(now=now + timedelta(seconds=1)) == [verification_id]

    def test_run_exactly_at_floor_is_not_stalled(self, app, sweep, make_submission, make_verification):
        from dlc_review.web.db.models.base import utcnow

        now = utcnow()
        submission_id = make_submission()
        started_at = now - timedelta(seconds=FLOOR)
        verification_id = make_verification(submission_id, status="RUNNING", started_at=started_at)

        assert sweep.sweep(now=now) == []
        assert sweep.reclassify(verification_id, submission_id, started_at, now) is False
