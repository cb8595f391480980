"""
Verification Service

Caller-facing operations for verification runs:
- start_verification: create (or reuse) the active run and dispatch it
- get_verification_status: snapshot of a run
- get_report: latest report for a submission, None while not yet available
- cancel_verification: move a PENDING/RUNNING run to FAILED/CANCELLED

Runs execute inline by default. With an executor, start_verification
returns immediately and the run proceeds in the background inside its own
app context.
"""

import logging
from concurrent.futures import Executor
from typing import Any, Dict, Optional

from flask import Flask, current_app

from dlc_review.errors import AccessDenied, ErrorCode, InvalidInput, NotFound
from dlc_review.guidelines import GuidelineRetriever, GuidelineStore, create_guideline_store
from dlc_review.llm.base import LanguageModel
from dlc_review.logging_utils import structured_log
from dlc_review.rag.evaluator import Evaluator
from dlc_review.web.db import db
from dlc_review.web.db.models import (
    ComplianceReport,
    Submission,
    SubmissionStatus,
    Verification,
    VerificationStatus,
)
from dlc_review.web.db.models.base import utcnow
from dlc_review.workers.verification_pipeline import VerificationPipeline

logger = logging.getLogger(__name__)

CANCEL_ATTEMPTS = 3


def build_pipeline(model: LanguageModel, store: Optional[GuidelineStore] = None, app: Optional[Flask] = None) -> VerificationPipeline:
    """Wire a pipeline from a model and guideline store using the app's config."""
    settings = (app or current_app).config
    store = store or create_guideline_store(model)
    retriever = GuidelineRetriever(
        store,
        top_k=settings["RAG_TOP_K"],
        min_similarity=settings["RAG_MIN_SIMILARITY"],
        timeout=settings["STORE_TIMEOUT_SECONDS"],
    )
    evaluator = Evaluator(model, timeout=settings["MODEL_TIMEOUT_SECONDS"])
    return VerificationPipeline(
        retriever,
        evaluator,
        max_workers=settings["EVALUATION_MAX_WORKERS"],
        step_timeout=settings["STEP_TIMEOUT_SECONDS"],
    )


class VerificationService:

    def __init__(self, pipeline: VerificationPipeline, executor: Optional[Executor] = None):
        self.pipeline = pipeline
        self.executor = executor

    def _get_submission(self, submission_id: str, user_id: Optional[str] = None) -> Submission:
        submission = Submission.get(submission_id)
        if submission is None:
            raise NotFound(f"Submission not found: {submission_id}")
        if user_id is not None and submission.user_id != user_id:
            raise AccessDenied(f"User {user_id} cannot access submission {submission_id}")
        return submission

    def _get_verification(self, verification_id: str, user_id: Optional[str] = None) -> Verification:
        verification = Verification.reload(verification_id)
        if verification is None:
            raise NotFound(f"Verification not found: {verification_id}")
        self._get_submission(verification.submission_id, user_id)
        return verification

    def start_verification(self, submission_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Start verification of a submission.

        If the submission already has a PENDING or RUNNING run, that run is
        returned unchanged. Otherwise a new run is created; earlier runs stay
        in history.

        Raises:
            NotFound: unknown submission
            InvalidInput: submission already has a final carrier outcome
        """
        submission = self._get_submission(submission_id, user_id)

        if submission.status in (SubmissionStatus.APPROVED.value, SubmissionStatus.REJECTED.value):
            raise InvalidInput(f"Submission cannot be verified in its current status: {submission.status}")

        active = Verification.find_by_submission_id(submission_id)
        if active is not None and not active.is_terminal:
            structured_log(
                "INFO", "verification_already_active",
                submission_id=submission_id, verification_id=active.id, status=active.status,
            )
            return active.as_dict()

        verification = Verification(
            submission_id=submission_id,
            status=VerificationStatus.PENDING.value,
            completed_steps=[],
            step_durations={},
            progress=0,
        )
        db.session.add(verification)
        db.session.flush()
        submission.verification_id = verification.id
        db.session.commit()

        structured_log("INFO", "verification_created", submission_id=submission_id, verification_id=verification.id)

        self._dispatch(verification.id)
        return self.get_verification_status(verification.id)

    def _dispatch(self, verification_id: str) -> None:
        if self.executor is None:
            self.pipeline.run(verification_id)
            return

        app = current_app._get_current_object()
        self.executor.submit(self._run_in_app_context, app, verification_id)

    def _run_in_app_context(self, app: Flask, verification_id: str) -> None:
        with app.app_context():
            try:
                self.pipeline.run(verification_id)
            except Exception:
                logger.exception(f"[{verification_id}] Background verification run crashed")
                raise

    def get_verification_status(self, verification_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        return self._get_verification(verification_id, user_id).as_dict()

    def get_report(self, submission_id: str, user_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Latest report for the submission.

        Returns None while no report exists yet ("not yet available").
        """
        self._get_submission(submission_id, user_id)
        report = ComplianceReport.find_latest_by_submission_id(submission_id)
        return report.as_dict() if report else None

    def cancel_verification(self, verification_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel a PENDING or RUNNING run.

        A run in progress notices the cancellation at its next write and
        aborts without overwriting it.

        Raises:
            NotFound: unknown verification
            InvalidInput: run already finished
        """
        for _ in range(CANCEL_ATTEMPTS):
            verification = self._get_verification(verification_id, user_id)
            if verification.is_terminal:
                raise InvalidInput(
                    f"Verification cannot be cancelled in its current status: {verification.status}"
                )

            if Verification.compare_and_set(
                verification_id,
                verification.version,
                verification.status,
                status=VerificationStatus.FAILED,
                error_code=ErrorCode.CANCELLED,
                error_message="Verification was cancelled by the user",
                completed_at=utcnow(),
            ):
                break
        else:
            raise InvalidInput(f"Verification {verification_id} changed concurrently; cancellation not applied")

        submission = Submission.get(verification.submission_id)
        if submission is not None and submission.status == SubmissionStatus.UNDER_REVIEW.value:
            submission.status = SubmissionStatus.SUBMITTED.value
            db.session.commit()

        structured_log(
            "INFO", "verification_cancelled",
            verification_id=verification_id,
            submission_id=verification.submission_id,
            error_code=ErrorCode.CANCELLED.value,
        )
        return self.get_verification_status(verification_id)
