"""
Verification run model.

One Verification row per run. A submission has at most one active run
(Submission.verification_id); finished runs are kept for history.

Lifecycle:
    PENDING → RUNNING → COMPLETED
                      → FAILED (error_code set)

Every write goes through compare_and_set(), which matches on the expected
(status, version) pair and bumps version. Two writers can race on the same
row (the run itself and the stall sweep); the loser's update matches zero
rows and it backs off instead of overwriting.

Invariants:
- error_code is non-empty iff status == FAILED
- estimated_completion_time never moves earlier within a run
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, update, delete

from dlc_review.web.db import db
from dlc_review.web.db.models.base import BaseModel, new_id, utcnow


class VerificationStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = (VerificationStatus.COMPLETED.value, VerificationStatus.FAILED.value)


class VerificationStep(str, Enum):
    RETRIEVE_GUIDELINES = "RETRIEVE_GUIDELINES"
    EVALUATE_CONTENT = "EVALUATE_CONTENT"
    ASSEMBLE_REPORT = "ASSEMBLE_REPORT"


PIPELINE_STEPS = [
    VerificationStep.RETRIEVE_GUIDELINES,
    VerificationStep.EVALUATE_CONTENT,
    VerificationStep.ASSEMBLE_REPORT,
]


class Verification(BaseModel):
    __tablename__ = "verifications"
    __table_args__ = (
        db.Index('idx_verification_status_started', 'status', 'started_at'),
        db.Index('idx_verification_status_error', 'status', 'error_code'),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    submission_id = db.Column(db.String(36), db.ForeignKey("submissions.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default=VerificationStatus.PENDING.value, index=True)
    current_step = db.Column(db.String(50), index=True)
    completed_steps = db.Column(JSON, nullable=False, default=list)
    progress = db.Column(db.Integer, nullable=False, default=0)  # 0-100
    step_durations = db.Column(JSON, nullable=False, default=dict)  # step -> seconds

    started_at = db.Column(db.DateTime, index=True)
    estimated_completion_time = db.Column(db.DateTime, index=True)
    completed_at = db.Column(db.DateTime)

    error_code = db.Column(db.String(50))
    error_message = db.Column(db.Text)

    # Compare-and-swap token, incremented by every write
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def error_code_consistent(self) -> bool:
        """error_code is set iff the run FAILED."""
        has_code = bool(self.error_code)
        return has_code == (self.status == VerificationStatus.FAILED.value)

    def later_estimate(self, proposed: datetime) -> datetime:
        """Clamp a proposed completion estimate so it never moves earlier."""
        if self.estimated_completion_time and proposed < self.estimated_completion_time:
            return self.estimated_completion_time
        return proposed

    def as_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "submission_id": self.submission_id,
            "status": self.status,
            "current_step": self.current_step,
            "completed_steps": list(self.completed_steps or []),
            "progress": self.progress,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "estimated_completion_time": (
                self.estimated_completion_time.isoformat() if self.estimated_completion_time else None
            ),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "version": self.version,
            "error": None,
        }
        if self.status == VerificationStatus.FAILED.value:
            data["error"] = {"code": self.error_code, "message": self.error_message}
        return data

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @classmethod
    def compare_and_set(
        cls,
        verification_id: str,
        expected_version: int,
        expected_status: str,
        commit: bool = True,
        **changes
    ) -> bool:
        """
        Atomically apply changes if the row still has the expected status and version.

        Returns True if exactly one row was updated. With commit=True the
        session is committed either way so loaded instances are expired and
        re-read on next access; with commit=False the caller owns the
        transaction.
        """
        values = {
            key: (value.value if isinstance(value, Enum) else value)
            for key, value in changes.items()
        }
        values["version"] = cls.version + 1
        values["updated_at"] = utcnow()

        stmt = (
            update(cls)
            .where(
                cls.id == verification_id,
                cls.version == expected_version,
                cls.status == VerificationStatus(expected_status).value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if commit:
            db.session.commit()
        return result.rowcount == 1

    @classmethod
    def delete_by_submission_id(cls, submission_id: str) -> int:
        result = db.session.execute(
            delete(cls).where(cls.submission_id == submission_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Finders
    # ------------------------------------------------------------------

    @classmethod
    def find_by_id(cls, verification_id: str) -> Optional["Verification"]:
        return cls.get(verification_id)

    @classmethod
    def reload(cls, verification_id: str) -> Optional["Verification"]:
        """Fetch the current row, bypassing any stale instance in the session."""
        return db.session.execute(
            db.select(cls).where(cls.id == verification_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @classmethod
    def find_by_submission_id(cls, submission_id: str) -> Optional["Verification"]:
        """Most recent run for the submission (the active one, if any)."""
        return cls.query.filter_by(submission_id=submission_id).order_by(
            cls.created_at.desc()
        ).first()

    @classmethod
    def find_all_by_submission_id(cls, submission_id: str) -> List["Verification"]:
        return cls.query.filter_by(submission_id=submission_id).order_by(
            cls.created_at.desc()
        ).all()

    @classmethod
    def find_by_status(cls, status: str) -> List["Verification"]:
        return cls.query.filter_by(status=VerificationStatus(status).value).all()

    @classmethod
    def find_by_status_and_started_before(cls, status: str, started_before: datetime) -> List["Verification"]:
        return cls.query.filter(
            cls.status == VerificationStatus(status).value,
            cls.started_at < started_before,
        ).order_by(cls.started_at.asc()).all()

    @classmethod
    def find_by_current_step(cls, current_step: str) -> List["Verification"]:
        step = current_step.value if isinstance(current_step, Enum) else current_step
        return cls.query.filter_by(current_step=step).all()

    @classmethod
    def find_by_estimated_completion_before(cls, time: datetime) -> List["Verification"]:
        return cls.query.filter(cls.estimated_completion_time < time).all()

    @classmethod
    def find_by_status_and_error_code(cls, status: str, error_code: str) -> List["Verification"]:
        code = error_code.value if isinstance(error_code, Enum) else error_code
        return cls.query.filter_by(
            status=VerificationStatus(status).value,
            error_code=code,
        ).all()

    def __repr__(self):
        return f"<Verification {self.id} {self.status} step={self.current_step} v{self.version}>"
