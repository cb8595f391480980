"""
Stall Sweep

Reclassifies runs stuck in RUNNING as FAILED with error code STALLED.

A run is stalled when it has been RUNNING for strictly longer than

    max(STALL_FLOOR_SECONDS, STALL_SECONDS_PER_UNIT × content units)

The sweep re-reads each candidate immediately before writing and writes via
compare-and-swap on (RUNNING, version). A run that finished between the
re-read and the write keeps its own terminal state.

Usage:
    sweep = StallSweep()
    stalled_ids = sweep.sweep()
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from dlc_review import config
from dlc_review.errors import ErrorCode
from dlc_review.logging_utils import structured_log
from dlc_review.web.db import db
from dlc_review.web.db.models import (
    Submission,
    SubmissionDocument,
    SubmissionImage,
    SubmissionMessage,
    SubmissionStatus,
    Verification,
    VerificationStatus,
)
from dlc_review.web.db.models.base import utcnow

logger = logging.getLogger(__name__)


def stall_threshold_seconds(
    unit_count: int,
    floor_seconds: float = config.STALL_FLOOR_SECONDS,
    seconds_per_unit: float = config.STALL_SECONDS_PER_UNIT,
) -> float:
    return max(floor_seconds, seconds_per_unit * unit_count)


def count_units(submission_id: str) -> int:
    return sum(
        model.count_by_submission_id(submission_id)
        for model in (SubmissionMessage, SubmissionDocument, SubmissionImage)
    )


class StallSweep:

    def __init__(
        self,
        floor_seconds: float = config.STALL_FLOOR_SECONDS,
        seconds_per_unit: float = config.STALL_SECONDS_PER_UNIT,
    ):
        self.floor_seconds = floor_seconds
        self.seconds_per_unit = seconds_per_unit

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """
        Run one pass.

        Returns:
            Ids of the runs moved to FAILED/STALLED in this pass
        """
        now = now or utcnow()
        # The floor is the smallest possible threshold
        candidates = Verification.find_by_status_and_started_before(
            VerificationStatus.RUNNING,
            now - timedelta(seconds=self.floor_seconds),
        )

        stalled = []
        for candidate in candidates:
            if self.reclassify(candidate.id, candidate.submission_id, candidate.started_at, now):
                stalled.append(candidate.id)

        structured_log("INFO", "stall_sweep_complete", candidates=len(candidates), stalled=len(stalled))
        return stalled

    def reclassify(self, verification_id: str, submission_id: str, started_at: datetime, now: datetime) -> bool:
        threshold = stall_threshold_seconds(count_units(submission_id), self.floor_seconds, self.seconds_per_unit)
        age = (now - started_at).total_seconds()
        if age <= threshold:
            return False

        current = Verification.reload(verification_id)
        if current is None or current.status != VerificationStatus.RUNNING.value:
            structured_log(
                "INFO", "stall_skip_finished",
                verification_id=verification_id,
                status=current.status if current else None,
            )
            return False

        swapped = Verification.compare_and_set(
            verification_id,
            current.version,
            VerificationStatus.RUNNING,
            status=VerificationStatus.FAILED,
            error_code=ErrorCode.STALLED,
            error_message=f"No progress for {int(age)}s (threshold {int(threshold)}s) in step {current.current_step}",
            completed_at=now,
        )
        if not swapped:
            structured_log("INFO", "stall_race_lost", verification_id=verification_id)
            return False

        submission = Submission.get(submission_id)
        if submission is not None and submission.status == SubmissionStatus.UNDER_REVIEW.value:
            submission.status = SubmissionStatus.SUBMITTED.value
            db.session.commit()

        structured_log(
            "WARNING", "run_stalled",
            verification_id=verification_id,
            submission_id=submission_id,
            error_code=ErrorCode.STALLED.value,
            age_seconds=int(age),
            threshold_seconds=int(threshold),
        )
        return True
