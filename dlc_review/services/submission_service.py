"""
Submission Service

Intake of submissions and their content units, and transactional deletion of
a submission together with everything it owns (units, runs, reports,
carrier submissions).

Content can only change while no verification run is active; findings are
tied to the run that produced them.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from dlc_review.errors import AccessDenied, InvalidInput, NotFound
from dlc_review.logging_utils import structured_log
from dlc_review.web.db import db
from dlc_review.web.db.models import (
    Submission,
    SubmissionDocument,
    SubmissionImage,
    SubmissionMessage,
    SubmissionStatus,
    Verification,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("user_id", "company_id", "business_name", "business_type", "use_case")


def _require(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidInput(f"{name} is required")
    return value


class SubmissionService:

    def create_submission(
        self,
        user_id: str,
        company_id: str,
        business_name: str,
        business_type: str,
        use_case: str,
        opt_in_method: Optional[str] = None,
        website_url: Optional[str] = None,
        additional_business_types: Optional[List[str]] = None,
        messages: Iterable[Dict[str, Any]] = (),
        documents: Iterable[Dict[str, Any]] = (),
        images: Iterable[Dict[str, Any]] = (),
    ) -> Submission:
        """
        Create a DRAFT submission with its content units in one transaction.

        Each unit is a dict of column values, e.g.
            {"message_text": "...", "opt_in_type": "web_form"}
            {"document_type": "privacy_policy", "extracted_text": "..."}
            {"image_type": "opt_in_form", "description": "..."}
        """
        values = {
            "user_id": user_id,
            "company_id": company_id,
            "business_name": business_name,
            "business_type": business_type,
            "use_case": use_case,
        }
        for name in REQUIRED_FIELDS:
            _require(values[name], name)

        submission = Submission(
            **values,
            opt_in_method=opt_in_method,
            website_url=website_url,
            additional_business_types=list(additional_business_types or []),
            status=SubmissionStatus.DRAFT.value,
        )
        for data in messages:
            submission.messages.append(self._build_message(data))
        for data in documents:
            submission.documents.append(self._build_document(data))
        for data in images:
            submission.images.append(SubmissionImage(**data))

        db.session.add(submission)
        db.session.commit()

        structured_log(
            "INFO", "submission_created",
            submission_id=submission.id,
            messages=len(submission.messages),
            documents=len(submission.documents),
            images=len(submission.images),
        )
        return submission

    def _build_message(self, data: Dict[str, Any]) -> SubmissionMessage:
        _require(data.get("message_text"), "message_text")
        return SubmissionMessage(**data)

    def _build_document(self, data: Dict[str, Any]) -> SubmissionDocument:
        _require(data.get("document_type"), "document_type")
        return SubmissionDocument(**data)

    def get_submission(self, submission_id: str, user_id: Optional[str] = None) -> Submission:
        submission = Submission.get(submission_id)
        if submission is None:
            raise NotFound(f"Submission not found: {submission_id}")
        if user_id is not None and submission.user_id != user_id:
            raise AccessDenied(f"User {user_id} cannot access submission {submission_id}")
        return submission

    def list_submissions(self, user_id: str, status: Optional[str] = None) -> List[Submission]:
        if status:
            return Submission.find_by_user_id_and_status(user_id, status)
        return Submission.find_by_user_id(user_id)

    def _ensure_editable(self, submission: Submission) -> None:
        active = Verification.find_by_submission_id(submission.id)
        if active is not None and not active.is_terminal:
            raise InvalidInput(f"Submission {submission.id} is being verified; content is locked")
        if submission.status in (SubmissionStatus.APPROVED.value, SubmissionStatus.REJECTED.value):
            raise InvalidInput(f"Submission {submission.id} is final ({submission.status})")

    def add_message(self, submission_id: str, **data) -> SubmissionMessage:
        submission = self.get_submission(submission_id)
        self._ensure_editable(submission)
        message = self._build_message(data)
        submission.messages.append(message)
        db.session.commit()
        return message

    def add_document(self, submission_id: str, **data) -> SubmissionDocument:
        submission = self.get_submission(submission_id)
        self._ensure_editable(submission)
        document = self._build_document(data)
        submission.documents.append(document)
        db.session.commit()
        return document

    def add_image(self, submission_id: str, **data) -> SubmissionImage:
        submission = self.get_submission(submission_id)
        self._ensure_editable(submission)
        image = SubmissionImage(**data)
        submission.images.append(image)
        db.session.commit()
        return image

    def delete_submission(self, submission_id: str, user_id: Optional[str] = None) -> None:
        """Delete the submission and everything it owns in one transaction."""
        submission = self.get_submission(submission_id, user_id)
        db.session.delete(submission)
        db.session.commit()
        structured_log("INFO", "submission_deleted", submission_id=submission_id)
