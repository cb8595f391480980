"""
Compliance report model.

Reports are immutable snapshots. Re-verifying a submission appends a new
report with the next revision number; the newest revision is the one
callers see, older revisions are kept untouched.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, func

from dlc_review.web.db import db
from dlc_review.web.db.models.base import BaseModel, new_id, utcnow


class ApprovalLikelihood(str, Enum):
    HIGH = "HIGH"      # Very likely to be approved
    MEDIUM = "MEDIUM"  # Might be approved with some changes
    LOW = "LOW"        # Unlikely to be approved without significant changes


class RecommendationPriority(str, Enum):
    HIGH = "HIGH"      # Fix before submitting to the carrier
    MEDIUM = "MEDIUM"  # Improves approval odds


class ComplianceReport(BaseModel):
    __tablename__ = "compliance_reports"
    __table_args__ = (
        db.UniqueConstraint('submission_id', 'revision', name='uq_report_revision'),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    submission_id = db.Column(db.String(36), db.ForeignKey("submissions.id"), nullable=False, index=True)
    verification_id = db.Column(db.String(36), index=True)
    revision = db.Column(db.Integer, nullable=False, default=1)

    overall_score = db.Column(db.Float, nullable=False)  # 0.0 - 1.0
    approval_likelihood = db.Column(db.String(10), nullable=False, index=True)

    # Per content kind; None when the kind has no determinate finding
    messages_score = db.Column(db.Float)
    documents_score = db.Column(db.Float)
    images_score = db.Column(db.Float)

    findings = db.Column(JSON, nullable=False, default=list)  # Per-unit findings
    critical_issues = db.Column(JSON, nullable=False, default=list)  # {component, unit_id, description, recommendation}
    recommendations = db.Column(JSON, nullable=False, default=list)  # {component, unit_id, priority, description}
    evaluated_units = db.Column(db.Integer, nullable=False, default=0)
    indeterminate_units = db.Column(db.Integer, nullable=False, default=0)

    generated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "verification_id": self.verification_id,
            "revision": self.revision,
            "overall_score": self.overall_score,
            "approval_likelihood": self.approval_likelihood,
            "component_scores": {
                "messages": self.messages_score,
                "documents": self.documents_score,
                "images": self.images_score,
            },
            "critical_issues": list(self.critical_issues or []),
            "recommendations": list(self.recommendations or []),
            "findings": list(self.findings or []),
            "evaluated_units": self.evaluated_units,
            "indeterminate_units": self.indeterminate_units,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }

    @classmethod
    def next_revision(cls, submission_id: str) -> int:
        current = db.session.execute(
            db.select(func.max(cls.revision)).where(cls.submission_id == submission_id)
        ).scalar()
        return (current or 0) + 1

    @classmethod
    def find_latest_by_submission_id(cls, submission_id: str) -> Optional["ComplianceReport"]:
        return cls.query.filter_by(submission_id=submission_id).order_by(
            cls.revision.desc()
        ).first()

    @classmethod
    def find_by_approval_likelihood(cls, likelihood: str) -> List["ComplianceReport"]:
        return cls.query.filter_by(approval_likelihood=ApprovalLikelihood(likelihood).value).all()

    @classmethod
    def find_by_overall_score_at_least(cls, min_score: float) -> List["ComplianceReport"]:
        return cls.query.filter(cls.overall_score >= min_score).all()

    @classmethod
    def find_by_overall_score_below(cls, max_score: float) -> List["ComplianceReport"]:
        return cls.query.filter(cls.overall_score < max_score).all()

    def __repr__(self):
        return f"<ComplianceReport {self.submission_id} r{self.revision} {self.overall_score:.3f} {self.approval_likelihood}>"
