"""
Submission aggregate and content units.

A Submission is the aggregate root for one 10DLC brand/campaign review.
It owns its content units (messages, documents, images), its verification
runs, its compliance reports and its carrier submissions; all of them are
removed in the same transaction when the submission is deleted.

Content units carry a tri-state compliance result:
- compliant = True / False once the evaluator produced a finding
- compliant = None with evaluation_status INDETERMINATE when the evaluator
  could not judge the unit (never coerced to True/False)
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, func

from dlc_review.web.db import db
from dlc_review.web.db.models.base import BaseModel, new_id, utcnow


class SubmissionStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class EvaluationStatus(str, Enum):
    PENDING = "PENDING"              # Not evaluated yet
    EVALUATED = "EVALUATED"          # compliant is True or False
    INDETERMINATE = "INDETERMINATE"  # Evaluator failed; compliant stays None


class Submission(BaseModel):
    __tablename__ = "submissions"
    __table_args__ = (
        db.Index('idx_submission_user_status', 'user_id', 'status'),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(100), nullable=False, index=True)
    company_id = db.Column(db.String(100), nullable=False, index=True)

    # Brand / campaign
    business_name = db.Column(db.String(255), nullable=False)
    business_type = db.Column(db.String(100), nullable=False)
    additional_business_types = db.Column(JSON, nullable=True)  # Secondary verticals
    use_case = db.Column(db.Text, nullable=False)
    opt_in_method = db.Column(db.String(100))
    website_url = db.Column(db.String(500))

    status = db.Column(db.String(20), nullable=False, default=SubmissionStatus.DRAFT.value, index=True)
    compliance_score = db.Column(db.Float)

    # Active verification run (historical runs stay in verifications)
    verification_id = db.Column(db.String(36), index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    messages = db.relationship(
        "SubmissionMessage", backref="submission",
        cascade="all, delete-orphan", order_by="SubmissionMessage.created_at"
    )
    documents = db.relationship(
        "SubmissionDocument", backref="submission",
        cascade="all, delete-orphan", order_by="SubmissionDocument.created_at"
    )
    images = db.relationship(
        "SubmissionImage", backref="submission",
        cascade="all, delete-orphan", order_by="SubmissionImage.created_at"
    )
    verifications = db.relationship(
        "Verification", backref="submission", cascade="all, delete-orphan"
    )
    reports = db.relationship(
        "ComplianceReport", backref="submission", cascade="all, delete-orphan"
    )
    carrier_submissions = db.relationship(
        "CarrierSubmission", backref="submission", cascade="all, delete-orphan"
    )

    def content_units(self) -> List["ContentUnitMixin"]:
        """All content units in evaluation order: messages, documents, images."""
        return [*self.messages, *self.documents, *self.images]

    def business_types(self) -> List[str]:
        """Distinct business types referenced by the submission, primary first."""
        types = [self.business_type]
        for extra in self.additional_business_types or []:
            if extra and extra not in types:
                types.append(extra)
        return types

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_id": self.company_id,
            "business_name": self.business_name,
            "business_type": self.business_type,
            "use_case": self.use_case,
            "opt_in_method": self.opt_in_method,
            "website_url": self.website_url,
            "status": self.status,
            "compliance_score": self.compliance_score,
            "verification_id": self.verification_id,
            "message_count": len(self.messages),
            "document_count": len(self.documents),
            "image_count": len(self.images),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def find_by_user_id(cls, user_id: str) -> List["Submission"]:
        return cls.query.filter_by(user_id=user_id).order_by(cls.created_at.desc()).all()

    @classmethod
    def find_by_user_id_and_status(cls, user_id: str, status: SubmissionStatus) -> List["Submission"]:
        return cls.query.filter_by(user_id=user_id, status=SubmissionStatus(status).value).all()

    @classmethod
    def find_by_company_id(cls, company_id: str) -> List["Submission"]:
        return cls.query.filter_by(company_id=company_id).all()

    @classmethod
    def find_by_verification_id(cls, verification_id: str) -> List["Submission"]:
        return cls.query.filter_by(verification_id=verification_id).all()

    def __repr__(self):
        return f"<Submission {self.id} {self.business_name} {self.status}>"


class ContentUnitMixin:
    """
    Columns and behaviour shared by messages, documents and images.

    Findings are write-once per verification run: the first finding recorded
    under a run id wins and later writes for the same run are ignored.
    """
    kind = "unit"

    compliant = db.Column(db.Boolean, nullable=True)
    evaluation_status = db.Column(db.String(20), nullable=False, default=EvaluationStatus.PENDING.value)
    issues = db.Column(JSON, nullable=True)
    suggestions = db.Column(JSON, nullable=True)
    evaluation_error = db.Column(db.Text, nullable=True)
    evaluated_run_id = db.Column(db.String(36), nullable=True)
    evaluated_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def classifier(self) -> Optional[str]:
        raise NotImplementedError

    def evaluation_text(self) -> str:
        """Text handed to the evaluator for this unit."""
        raise NotImplementedError

    def is_resolved_for(self, run_id: str) -> bool:
        return self.evaluated_run_id == run_id

    def record_finding(self, run_id: str, compliant: bool, issues: List[str], suggestions: List[str]) -> bool:
        """Store a finding for run_id. Returns False if the unit was already resolved in this run."""
        if self.is_resolved_for(run_id):
            return False
        self.compliant = bool(compliant)
        self.evaluation_status = EvaluationStatus.EVALUATED.value
        self.issues = list(issues)
        self.suggestions = list(suggestions)
        self.evaluation_error = None
        self.evaluated_run_id = run_id
        self.evaluated_at = utcnow()
        return True

    def record_indeterminate(self, run_id: str, error: str) -> bool:
        """Mark the unit as not judgeable in run_id; compliant stays unknown."""
        if self.is_resolved_for(run_id):
            return False
        self.compliant = None
        self.evaluation_status = EvaluationStatus.INDETERMINATE.value
        self.issues = []
        self.suggestions = []
        self.evaluation_error = error
        self.evaluated_run_id = run_id
        self.evaluated_at = utcnow()
        return True

    def finding_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.id,
            "kind": self.kind,
            "classifier": self.classifier,
            "compliant": self.compliant,
            "evaluation_status": self.evaluation_status,
            "issues": self.issues or [],
            "suggestions": self.suggestions or [],
            "error": self.evaluation_error,
        }

    @classmethod
    def find_by_submission_id(cls, submission_id: str):
        return cls.query.filter_by(submission_id=submission_id).order_by(cls.created_at).all()

    @classmethod
    def find_by_submission_id_and_compliant(cls, submission_id: str, compliant: Optional[bool]):
        query = cls.query.filter_by(submission_id=submission_id)
        if compliant is None:
            query = query.filter(cls.compliant.is_(None))
        else:
            query = query.filter(cls.compliant == compliant)
        return query.all()

    @classmethod
    def count_by_submission_id(cls, submission_id: str) -> int:
        return db.session.execute(
            db.select(func.count()).select_from(cls).filter_by(submission_id=submission_id)
        ).scalar_one()


class SubmissionMessage(ContentUnitMixin, BaseModel):
    """Sample message template that will be sent to recipients."""
    __tablename__ = "submission_messages"
    kind = "message"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    submission_id = db.Column(db.String(36), db.ForeignKey("submissions.id"), nullable=False, index=True)
    message_text = db.Column(db.Text, nullable=False)
    opt_in_type = db.Column(db.String(50))  # web_form, keyword, paper_form, verbal

    @property
    def classifier(self) -> Optional[str]:
        return self.opt_in_type

    def evaluation_text(self) -> str:
        return self.message_text or ""

    @classmethod
    def find_by_submission_id_and_opt_in_type(cls, submission_id: str, opt_in_type: str):
        return cls.query.filter_by(submission_id=submission_id, opt_in_type=opt_in_type).all()


class SubmissionDocument(ContentUnitMixin, BaseModel):
    """Supporting document (privacy policy, terms of service, ...)."""
    __tablename__ = "submission_documents"
    kind = "document"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    submission_id = db.Column(db.String(36), db.ForeignKey("submissions.id"), nullable=False, index=True)
    document_url = db.Column(db.String(500))
    document_type = db.Column(db.String(50), nullable=False)  # privacy_policy, terms_of_service, ...
    file_name = db.Column(db.String(255))
    description = db.Column(db.Text)
    extracted_text = db.Column(db.Text)  # Produced by the external extraction service

    @property
    def classifier(self) -> Optional[str]:
        return self.document_type

    def evaluation_text(self) -> str:
        parts = []
        if self.description:
            parts.append(f"Description: {self.description}")
        if self.extracted_text:
            parts.append(self.extracted_text)
        return "\n\n".join(parts)

    @classmethod
    def find_by_submission_id_and_document_type(cls, submission_id: str, document_type: str):
        return cls.query.filter_by(submission_id=submission_id, document_type=document_type).all()


class SubmissionImage(ContentUnitMixin, BaseModel):
    """Screenshot of an opt-in flow, form or call-to-action."""
    __tablename__ = "submission_images"
    kind = "image"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    submission_id = db.Column(db.String(36), db.ForeignKey("submissions.id"), nullable=False, index=True)
    image_url = db.Column(db.String(500))
    image_type = db.Column(db.String(50))  # opt_in_form, call_to_action, keyword_flyer
    opt_in_type = db.Column(db.String(50))
    file_name = db.Column(db.String(255))
    description = db.Column(db.Text)
    detected_text = db.Column(db.Text)  # OCR output from the external extraction service

    @property
    def classifier(self) -> Optional[str]:
        return self.image_type

    def evaluation_text(self) -> str:
        parts = []
        if self.image_type:
            parts.append(f"Image type: {self.image_type}")
        if self.opt_in_type:
            parts.append(f"Opt-in type: {self.opt_in_type}")
        if self.description:
            parts.append(f"Description: {self.description}")
        if self.detected_text:
            parts.append(f"Detected text:\n{self.detected_text}")
        return "\n".join(parts)

    @classmethod
    def find_by_submission_id_and_image_type(cls, submission_id: str, image_type: str):
        return cls.query.filter_by(submission_id=submission_id, image_type=image_type).all()

    @classmethod
    def find_by_submission_id_and_opt_in_type(cls, submission_id: str, opt_in_type: str):
        return cls.query.filter_by(submission_id=submission_id, opt_in_type=opt_in_type).all()
