"""
Carrier Service

Sends verified submissions to a carrier network and applies the carrier's
outcome to the submission:

    carrier ACCEPTED -> submission APPROVED
    carrier REJECTED -> submission REJECTED

Only the status field of a carrier response is consumed. Delivery is
at-least-once from the transport's point of view; the same outcome applied
twice leaves the same state.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from dlc_review.errors import ComplianceError, InvalidInput, NotFound
from dlc_review.logging_utils import structured_log
from dlc_review.web.db import db
from dlc_review.web.db.models import (
    CarrierStatus,
    CarrierSubmission,
    Submission,
    SubmissionStatus,
)
from dlc_review.web.db.models.base import utcnow

logger = logging.getLogger(__name__)

# Raw carrier status strings -> CarrierStatus
STATUS_ALIASES = {
    "ACCEPTED": CarrierStatus.ACCEPTED,
    "APPROVED": CarrierStatus.ACCEPTED,
    "VERIFIED": CarrierStatus.ACCEPTED,
    "REJECTED": CarrierStatus.REJECTED,
    "DENIED": CarrierStatus.REJECTED,
    "FAILED": CarrierStatus.REJECTED,
    "PENDING": CarrierStatus.PENDING,
    "IN_REVIEW": CarrierStatus.PENDING,
    "IN_PROGRESS": CarrierStatus.PENDING,
    "SUBMITTED": CarrierStatus.PENDING,
}

OUTCOME_TO_SUBMISSION_STATUS = {
    CarrierStatus.ACCEPTED: SubmissionStatus.APPROVED,
    CarrierStatus.REJECTED: SubmissionStatus.REJECTED,
}


class CarrierTransportError(ComplianceError):
    """The carrier transport could not be reached or answered with an error."""


class CarrierTransport(ABC):
    """Abstract carrier network client."""

    CARRIER_ID: str = ""

    @abstractmethod
    def submit(self, submission: Submission) -> str:
        """
        Register a submission with the carrier.

        Returns:
            Carrier-side submission id

        Raises:
            CarrierTransportError
        """
        pass

    @abstractmethod
    def poll(self, carrier_submission_id: str) -> str:
        """
        Fetch the raw status string for a carrier submission.

        Raises:
            CarrierTransportError
        """
        pass


def normalize_status(raw_status: Optional[str]) -> CarrierStatus:
    if not raw_status:
        return CarrierStatus.ERROR
    return STATUS_ALIASES.get(raw_status.strip().upper().replace(" ", "_"), CarrierStatus.ERROR)


class CarrierService:

    def __init__(self, transport: CarrierTransport):
        self.transport = transport

    def submit_to_carrier(self, submission_id: str) -> CarrierSubmission:
        """
        Send a verified submission to the carrier.

        Raises:
            NotFound: unknown submission
            InvalidInput: submission has not finished verification
        """
        submission = Submission.get(submission_id)
        if submission is None:
            raise NotFound(f"Submission not found: {submission_id}")
        if submission.status != SubmissionStatus.SUBMITTED.value:
            raise InvalidInput(f"Submission cannot be sent to carrier in status {submission.status}")

        record = CarrierSubmission(
            submission_id=submission_id,
            carrier_id=self.transport.CARRIER_ID,
            status=CarrierStatus.PENDING.value,
        )
        try:
            record.carrier_submission_id = self.transport.submit(submission)
        except CarrierTransportError as e:
            record.status = CarrierStatus.ERROR.value
            record.carrier_status = str(e)[:100]
            structured_log("ERROR", "carrier_submit_failed", submission_id=submission_id, error=str(e))

        db.session.add(record)
        db.session.commit()

        structured_log(
            "INFO", "carrier_submitted",
            submission_id=submission_id,
            carrier_id=record.carrier_id,
            carrier_submission_id=record.carrier_submission_id,
            status=record.status,
        )
        return record

    def apply_outcome(
        self,
        carrier_submission_id: str,
        raw_status: str,
        rejection_reason: Optional[str] = None,
        response_date: Optional[datetime] = None,
    ) -> CarrierSubmission:
        """
        Record a carrier status and update the submission for final outcomes.

        Only the most recent carrier submission of a submission drives the
        submission's status.
        """
        record = CarrierSubmission.find_by_carrier_submission_id(carrier_submission_id)
        if record is None:
            raise NotFound(f"Carrier submission not found: {carrier_submission_id}")

        status = normalize_status(raw_status)
        record.carrier_status = raw_status
        record.status = status.value
        if status == CarrierStatus.REJECTED:
            record.rejection_reason = rejection_reason
        if status in OUTCOME_TO_SUBMISSION_STATUS:
            record.response_date = response_date or utcnow()

        latest = CarrierSubmission.find_latest_by_submission_id(record.submission_id)
        submission = Submission.get(record.submission_id)
        if status in OUTCOME_TO_SUBMISSION_STATUS and latest is not None and latest.id == record.id:
            submission.status = OUTCOME_TO_SUBMISSION_STATUS[status].value

        db.session.commit()

        structured_log(
            "INFO", "carrier_outcome_applied",
            submission_id=record.submission_id,
            carrier_submission_id=carrier_submission_id,
            carrier_status=raw_status,
            status=record.status,
            submission_status=submission.status if submission else None,
        )
        return record

    def refresh_status(self, carrier_submission_id: str) -> CarrierSubmission:
        """Poll the carrier for one submission and apply the result."""
        try:
            raw_status = self.transport.poll(carrier_submission_id)
        except CarrierTransportError as e:
            structured_log("WARNING", "carrier_poll_failed", carrier_submission_id=carrier_submission_id, error=str(e))
            record = CarrierSubmission.find_by_carrier_submission_id(carrier_submission_id)
            if record is None:
                raise NotFound(f"Carrier submission not found: {carrier_submission_id}")
            return record
        return self.apply_outcome(carrier_submission_id, raw_status)

    def poll_pending(self, created_before: Optional[datetime] = None) -> List[CarrierSubmission]:
        """Refresh every PENDING carrier submission (optionally only older ones)."""
        if created_before is not None:
            pending = CarrierSubmission.find_by_status_and_created_before(CarrierStatus.PENDING, created_before)
        else:
            pending = CarrierSubmission.find_by_status(CarrierStatus.PENDING)
        return [self.refresh_status(record.carrier_submission_id) for record in pending]
