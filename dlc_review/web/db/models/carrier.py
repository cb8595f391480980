"""
Carrier submission model.

Tracks registrations sent to the carrier network. A submission can be
resubmitted, so there may be several rows per submission; the most recent
one by created_at is authoritative.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from dlc_review.web.db import db
from dlc_review.web.db.models.base import BaseModel, new_id, utcnow


class CarrierStatus(str, Enum):
    PENDING = "PENDING"    # Sent, no outcome yet
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    ERROR = "ERROR"        # Transport or carrier-side error


class CarrierSubmission(BaseModel):
    __tablename__ = "carrier_submissions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    submission_id = db.Column(db.String(36), db.ForeignKey("submissions.id"), nullable=False, index=True)
    carrier_id = db.Column(db.String(50), nullable=False)
    carrier_submission_id = db.Column(db.String(100), unique=True, index=True)

    status = db.Column(db.String(20), nullable=False, default=CarrierStatus.PENDING.value, index=True)
    carrier_status = db.Column(db.String(100))  # Raw status string from the carrier
    rejection_reason = db.Column(db.Text)
    response_date = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_final(self) -> bool:
        return self.status in (CarrierStatus.ACCEPTED.value, CarrierStatus.REJECTED.value)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "carrier_id": self.carrier_id,
            "carrier_submission_id": self.carrier_submission_id,
            "status": self.status,
            "carrier_status": self.carrier_status,
            "rejection_reason": self.rejection_reason,
            "response_date": self.response_date.isoformat() if self.response_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def find_by_submission_id(cls, submission_id: str) -> List["CarrierSubmission"]:
        return cls.query.filter_by(submission_id=submission_id).order_by(cls.created_at.desc()).all()

    @classmethod
    def find_by_carrier_submission_id(cls, carrier_submission_id: str) -> Optional["CarrierSubmission"]:
        return cls.query.filter_by(carrier_submission_id=carrier_submission_id).first()

    @classmethod
    def find_by_status(cls, status: str) -> List["CarrierSubmission"]:
        return cls.query.filter_by(status=CarrierStatus(status).value).all()

    @classmethod
    def find_by_status_and_created_before(cls, status: str, created_before: datetime) -> List["CarrierSubmission"]:
        return cls.query.filter(
            cls.status == CarrierStatus(status).value,
            cls.created_at < created_before,
        ).all()

    @classmethod
    def find_latest_by_submission_id(cls, submission_id: str) -> Optional["CarrierSubmission"]:
        return cls.query.filter_by(submission_id=submission_id).order_by(cls.created_at.desc()).first()

    def __repr__(self):
        return f"<CarrierSubmission {self.carrier_id} {self.carrier_submission_id} {self.status}>"
