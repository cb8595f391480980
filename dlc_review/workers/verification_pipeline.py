"""
Verification Pipeline

Drives one Verification run through its state machine:

    PENDING → RUNNING → COMPLETED
                      → FAILED (error_code)

Steps while RUNNING:
1. RETRIEVE_GUIDELINES: guideline text for every business type of the submission
2. EVALUATE_CONTENT: judge every content unit (bounded thread pool fan-out)
3. ASSEMBLE_REPORT: score findings, persist a new report revision

Each step sets current_step before it runs and, on success, appends to
completed_steps, recomputes progress and pushes estimated_completion_time
(now + mean step duration × remaining steps, never earlier than before).

Every write is a compare-and-swap on (status, version). If the record has
vanished, has been moved out of RUNNING (stall sweep, cancellation) or the
CAS loses, the run aborts quietly and leaves the record as the other writer
left it.

Threading: worker threads only call the model. All database reads and
writes stay on the thread that called run(), inside its app context.

Usage:
    pipeline = VerificationPipeline(retriever, evaluator)
    verification = pipeline.run(verification_id)
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from dlc_review import config
from dlc_review.errors import (
    ErrorCode,
    EvaluationError,
    ModelTimeout,
    OperationTimeout,
    ReportUnavailable,
    RunAborted,
)
from dlc_review.guidelines.retriever import GuidelineRetriever
from dlc_review.logging_utils import StepTimer, structured_log
from dlc_review.rag.evaluator import Evaluator
from dlc_review.web.db import db
from dlc_review.web.db.models import (
    PIPELINE_STEPS,
    Submission,
    SubmissionStatus,
    Verification,
    VerificationStatus,
    VerificationStep,
)
from dlc_review.web.db.models.base import utcnow
from dlc_review.workers.report_assembler import ReportAssembler

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE = 2000

STEP_ERROR_CODES = {
    VerificationStep.RETRIEVE_GUIDELINES.value: ErrorCode.RETRIEVAL_FAILED,
    VerificationStep.EVALUATE_CONTENT.value: ErrorCode.EVALUATION_FAILED,
    VerificationStep.ASSEMBLE_REPORT.value: ErrorCode.REPORT_FAILED,
}


class StepFailed(Exception):
    """Internal signal: the run has been recorded as FAILED."""

    def __init__(self, code: ErrorCode):
        super().__init__(code.value)
        self.code = code


def classify_error(error: Exception, step_code: ErrorCode) -> ErrorCode:
    """Map an exception raised inside a step to the run's error code."""
    if isinstance(error, OperationTimeout):
        return ErrorCode.TIMEOUT
    if isinstance(error, ReportUnavailable):
        return ErrorCode.EVALUATION_FAILED
    return step_code


def estimate_completion(durations: Dict[str, float], remaining_steps: int, default_seconds: float):
    """now + mean(observed step durations) × remaining steps."""
    mean = sum(durations.values()) / len(durations) if durations else default_seconds
    return utcnow() + timedelta(seconds=mean * remaining_steps)


class VerificationPipeline:

    def __init__(
        self,
        retriever: GuidelineRetriever,
        evaluator: Evaluator,
        assembler: Optional[ReportAssembler] = None,
        max_workers: int = config.EVALUATION_MAX_WORKERS,
        step_timeout: Optional[float] = config.STEP_TIMEOUT_SECONDS,
        default_step_estimate: float = config.DEFAULT_STEP_ESTIMATE_SECONDS,
    ):
        self.retriever = retriever
        self.evaluator = evaluator
        self.assembler = assembler or ReportAssembler()
        self.max_workers = max(1, max_workers)
        self.step_timeout = step_timeout
        self.default_step_estimate = default_step_estimate

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, verification_id: str) -> Optional[Verification]:
        """
        Execute a PENDING run to a terminal state.

        Terminal and already-RUNNING runs are left alone, so calling run()
        repeatedly for the same id transitions it to RUNNING at most once.

        Returns:
            The Verification as it stands after the run, or None if it was deleted.
        """
        verification = Verification.reload(verification_id)
        if verification is None:
            structured_log("WARNING", "run_missing", verification_id=verification_id)
            return None

        context = {"verification_id": verification_id, "submission_id": verification.submission_id}

        if verification.status != VerificationStatus.PENDING.value:
            structured_log("INFO", "run_noop", status=verification.status, **context)
            return verification

        if not self._claim(verification):
            structured_log("INFO", "run_claim_lost", **context)
            return Verification.reload(verification_id)

        structured_log("INFO", "run_started", **context)

        try:
            self._set_submission_status(verification.submission_id, SubmissionStatus.UNDER_REVIEW)
            self._execute(verification_id, verification.submission_id, context)
        except StepFailed as e:
            structured_log("ERROR", "run_failed", error_code=e.code.value, **context)
        except RunAborted as e:
            db.session.rollback()
            structured_log("INFO", "run_aborted", reason=str(e), **context)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.exception(f"[{verification_id}] Database error outside a step")
            self._fail_after_error(verification_id, e, context)

        return Verification.reload(verification_id)

    def _claim(self, verification: Verification) -> bool:
        """PENDING → RUNNING, stamping started_at exactly once."""
        now = utcnow()
        return Verification.compare_and_set(
            verification.id,
            verification.version,
            VerificationStatus.PENDING,
            status=VerificationStatus.RUNNING,
            started_at=now,
            current_step=PIPELINE_STEPS[0],
            progress=0,
            completed_steps=[],
            step_durations={},
            estimated_completion_time=verification.later_estimate(
                now + timedelta(seconds=self.default_step_estimate * len(PIPELINE_STEPS))
            ),
        )

    def _fail_after_error(self, verification_id: str, error: Exception, context: Dict[str, Any]) -> None:
        """Record FAILED with the current step's code; give up quietly if that write fails too."""
        try:
            current = Verification.reload(verification_id)
            step = current.current_step if current is not None else None
            code = STEP_ERROR_CODES.get(step, ErrorCode.EVALUATION_FAILED)
            self._fail(verification_id, code, error, context)
            structured_log("ERROR", "run_failed", error_code=code.value, **context)
        except (RunAborted, SQLAlchemyError) as e:
            db.session.rollback()
            structured_log("ERROR", "run_fail_unrecorded", reason=str(e), **context)

    def _execute(self, verification_id: str, submission_id: str, context: Dict[str, Any]) -> None:
        submission = Submission.get(submission_id)
        if submission is None:
            raise RunAborted(f"Submission {submission_id} no longer exists")

        guideline_text = self._run_step(
            verification_id,
            VerificationStep.RETRIEVE_GUIDELINES,
            lambda: self._retrieve_guidelines(submission_id),
            ErrorCode.RETRIEVAL_FAILED,
            context,
        )

        self._run_step(
            verification_id,
            VerificationStep.EVALUATE_CONTENT,
            lambda: self._evaluate_content(verification_id, submission_id, guideline_text, context),
            ErrorCode.EVALUATION_FAILED,
            context,
        )

        # The report is saved in the same transaction as the COMPLETED write
        report = self._run_step(
            verification_id,
            VerificationStep.ASSEMBLE_REPORT,
            lambda: self.assembler.build(submission_id, verification_id),
            ErrorCode.REPORT_FAILED,
            context,
            finalize=lambda built: self.assembler.save(built, commit=False),
        )

        self._set_submission_status(submission_id, SubmissionStatus.SUBMITTED)
        structured_log(
            "INFO", "run_completed",
            report_revision=report.revision,
            overall_score=round(report.overall_score, 4),
            **context
        )

    # ------------------------------------------------------------------
    # Step machinery
    # ------------------------------------------------------------------

    def _run_step(
        self,
        verification_id: str,
        step: VerificationStep,
        work: Callable[[], Any],
        failure_code: ErrorCode,
        context: Dict[str, Any],
        finalize: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        self._write(verification_id, current_step=step)

        timer = StepTimer(verification_id, step.value, submission_id=context["submission_id"])
        try:
            with timer:
                result = work()
        except RunAborted:
            raise
        except Exception as e:
            db.session.rollback()
            code = classify_error(e, failure_code)
            if not isinstance(e, (OperationTimeout, ReportUnavailable, EvaluationError, SQLAlchemyError)):
                logger.exception(f"[{verification_id}] Unexpected error in {step.value}")
            self._fail(verification_id, code, e, context)
            raise StepFailed(code) from e

        self._complete_step(
            verification_id, step, timer.duration_seconds,
            on_swap=(lambda: finalize(result)) if finalize else None,
        )
        return result

    def _write(self, verification_id: str, on_swap: Optional[Callable[[], Any]] = None, **changes) -> None:
        """
        CAS the run's own record while it is RUNNING; abort if ownership was lost.

        on_swap runs after a won CAS and before the commit, so whatever it
        adds to the session is committed together with the transition.
        """
        current = Verification.reload(verification_id)
        if current is None:
            raise RunAborted(f"Verification {verification_id} no longer exists")
        if current.status != VerificationStatus.RUNNING.value:
            raise RunAborted(f"Verification {verification_id} moved to {current.status}")
        swapped = Verification.compare_and_set(
            verification_id, current.version, VerificationStatus.RUNNING, commit=False, **changes
        )
        if not swapped:
            db.session.rollback()
            raise RunAborted(f"Lost compare-and-set on verification {verification_id}")
        if on_swap is not None:
            on_swap()
        db.session.commit()

    def _complete_step(
        self,
        verification_id: str,
        step: VerificationStep,
        duration_seconds: float,
        on_swap: Optional[Callable[[], Any]] = None,
    ) -> None:
        current = Verification.reload(verification_id)
        if current is None:
            raise RunAborted(f"Verification {verification_id} no longer exists")

        completed = list(current.completed_steps or [])
        if step.value not in completed:
            completed.append(step.value)
        durations = dict(current.step_durations or {})
        durations[step.value] = round(duration_seconds, 3)

        remaining = len(PIPELINE_STEPS) - len(completed)
        estimate = current.later_estimate(
            estimate_completion(durations, remaining, self.default_step_estimate)
        )
        changes = {
            "completed_steps": completed,
            "step_durations": durations,
            "progress": int(round(100 * len(completed) / len(PIPELINE_STEPS))),
            "estimated_completion_time": estimate,
        }
        if remaining == 0:
            changes.update(
                status=VerificationStatus.COMPLETED,
                current_step=None,
                completed_at=utcnow(),
            )

        self._write(verification_id, on_swap=on_swap, **changes)
        structured_log(
            "INFO", "step_recorded",
            verification_id=verification_id,
            step=step.value,
            progress=changes["progress"],
            estimated_completion_time=estimate.isoformat(),
        )

    def _fail(self, verification_id: str, code: ErrorCode, error: Exception, context: Dict[str, Any]) -> None:
        message = f"{type(error).__name__}: {error}"[:MAX_ERROR_MESSAGE]
        self._write(
            verification_id,
            status=VerificationStatus.FAILED,
            error_code=code,
            error_message=message,
            completed_at=utcnow(),
        )
        self._set_submission_status(context["submission_id"], SubmissionStatus.SUBMITTED)

    def _set_submission_status(self, submission_id: str, status: SubmissionStatus) -> None:
        submission = Submission.get(submission_id)
        if submission is None:
            raise RunAborted(f"Submission {submission_id} no longer exists")
        # Carrier outcomes are final
        if submission.status in (SubmissionStatus.APPROVED.value, SubmissionStatus.REJECTED.value):
            return
        submission.status = status.value
        db.session.commit()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _retrieve_guidelines(self, submission_id: str) -> str:
        submission = Submission.get(submission_id)
        if submission is None:
            raise RunAborted(f"Submission {submission_id} no longer exists")

        sections = []
        for business_type in submission.business_types():
            sections.append(self.retriever.retrieve_guidelines(business_type))
        return "\n\n".join(sections)

    def _evaluate_content(
        self,
        verification_id: str,
        submission_id: str,
        guideline_text: str,
        context: Dict[str, Any],
    ) -> Dict[str, int]:
        submission = Submission.get(submission_id)
        if submission is None:
            raise RunAborted(f"Submission {submission_id} no longer exists")

        pending = [unit for unit in submission.content_units() if not unit.is_resolved_for(verification_id)]
        summary = {"units": len(pending), "evaluated": 0, "indeterminate": 0}
        if not pending:
            return summary

        # Plain values only cross into worker threads
        jobs = [
            (unit, (unit.kind, unit.classifier, unit.evaluation_text(), guideline_text, unit.id, submission.use_case))
            for unit in pending
        ]

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(jobs)),
            thread_name_prefix=f"evaluate-{verification_id[:8]}",
        )
        try:
            futures = [(unit, executor.submit(self.evaluator.judge, *args)) for unit, args in jobs]
            _, not_done = wait([future for _, future in futures], timeout=self.step_timeout)
            if not_done:
                raise OperationTimeout(
                    f"{len(not_done)} of {len(futures)} units unfinished after {self.step_timeout:g}s"
                )

            timed_out = None
            for unit, future in futures:
                try:
                    finding = future.result()
                except EvaluationError as e:
                    self.evaluator.record_error(unit, verification_id, e)
                    summary["indeterminate"] += 1
                    structured_log(
                        "WARNING", "unit_indeterminate",
                        unit_id=unit.id, kind=unit.kind, error=str(e), **context
                    )
                except ModelTimeout as e:
                    timed_out = timed_out or e
                else:
                    self.evaluator.record_finding(unit, verification_id, finding)
                    summary["evaluated"] += 1
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        db.session.commit()
        if timed_out is not None:
            raise timed_out

        structured_log("INFO", "content_evaluated", **summary, **context)
        return summary
