"""
Tests for submission intake, edit locking and cascading deletion.
"""

import pytest


@pytest.fixture
def submissions():
    from dlc_review.services.submission_service import SubmissionService
    return SubmissionService()


BASE = {
    "user_id": "user-1",
    "company_id": "company-1",
    "business_name": "Acme Retail",
    "business_type": "retail",
    "use_case": "Order and shipping notifications",
}


class TestCreateSubmission:

    def test_creates_draft_with_units(self, app, submissions):
        submission = submissions.create_submission(
            **BASE,
            additional_business_types=["ecommerce"],
            messages=[{"message_text": "Your order shipped. Reply STOP to opt out.", "opt_in_type": "web_form"}],
            documents=[{"document_type": "privacy_policy", "extracted_text": "We never share numbers."}],
            images=[{"image_type": "opt_in_form", "description": "Checkbox on checkout page"}],
        )

        assert submission.status == "DRAFT"
        assert submission.business_types() == ["retail", "ecommerce"]
        assert [unit.kind for unit in submission.content_units()] == ["message", "document", "image"]
        assert all(unit.evaluation_status == "PENDING" for unit in submission.content_units())

        data = submission.as_dict()
        assert data["message_count"] == 1
        assert data["document_count"] == 1
        assert data["image_count"] == 1

    @pytest.mark.parametrize("field", ["user_id", "business_name", "business_type", "use_case"])
    def test_required_fields(self, app, submissions, field):
        from dlc_review.errors import InvalidInput

        values = dict(BASE, **{field: "   "})

        with pytest.raises(InvalidInput):
            submissions.create_submission(**values)

    def test_message_text_required(self, app, submissions):
        from dlc_review.errors import InvalidInput
        from dlc_review.web.db.models import Submission

        with pytest.raises(InvalidInput):
            submissions.create_submission(**BASE, messages=[{"opt_in_type": "keyword"}])

        assert Submission.find_by_user_id("user-1") == []

    def test_document_type_required(self, app, submissions):
        from dlc_review.errors import InvalidInput

        with pytest.raises(InvalidInput):
            submissions.create_submission(**BASE, documents=[{"extracted_text": "terms"}])


class TestQueries:

    def test_get_checks_owner(self, app, submissions, make_submission):
        from dlc_review.errors import AccessDenied, NotFound

        submission_id = make_submission(user_id="owner")

        assert submissions.get_submission(submission_id, "owner").id == submission_id
        with pytest.raises(AccessDenied):
            submissions.get_submission(submission_id, "intruder")
        with pytest.raises(NotFound):
            submissions.get_submission("missing")

    def test_list_by_status(self, app, submissions, make_submission):
        from dlc_review.web.db import db
        from dlc_review.web.db.models import Submission

        draft_id = make_submission()
        submitted_id = make_submission()
        make_submission(user_id="other-user")
        Submission.get(submitted_id).status = "SUBMITTED"
        db.session.commit()

        assert {s.id for s in submissions.list_submissions("user-1")} == {draft_id, submitted_id}
        assert [s.id for s in submissions.list_submissions("user-1", status="SUBMITTED")] == [submitted_id]


class TestEditing:

    def test_add_units(self, app, submissions, make_submission):
        from dlc_review.web.db.models import Submission

        submission_id = make_submission()

        submissions.add_message(submission_id, message_text="Flash sale today! Reply STOP to end.")
        submissions.add_document(submission_id, document_type="terms_of_service", extracted_text="Terms")
        submissions.add_image(submission_id, image_type="call_to_action", detected_text="Text JOIN to 12345")

        submission = Submission.get(submission_id)
        assert len(submission.messages) == 2
        assert len(submission.documents) == 1
        assert len(submission.images) == 1

    def test_locked_while_run_active(self, app, submissions, make_submission, make_verification):
        from dlc_review.errors import InvalidInput

        submission_id = make_submission()
        make_verification(submission_id, status="RUNNING")

        with pytest.raises(InvalidInput):
            submissions.add_message(submission_id, message_text="Another message")

    def test_editable_after_run_finished(self, app, submissions, make_submission, make_verification):
        submission_id = make_submission()
        make_verification(submission_id, status="COMPLETED")

        message = submissions.add_message(submission_id, message_text="Another message")

        assert message.id is not None

    def test_locked_after_carrier_outcome(self, app, submissions, make_submission):
        from dlc_review.errors import InvalidInput
        from dlc_review.web.db import db
        from dlc_review.web.db.models import Submission

        submission_id = make_submission()
        Submission.get(submission_id).status = "APPROVED"
        db.session.commit()

        with pytest.raises(InvalidInput):
            submissions.add_document(submission_id, document_type="privacy_policy")


class TestDeleteSubmission:

    def test_delete_removes_everything_owned(self, app, submissions, make_submission, make_pipeline):
        from dlc_review.services.carrier_service import CarrierService
        from dlc_review.services.verification_service import VerificationService
        from dlc_review.web.db.models import (
            CarrierSubmission,
            ComplianceReport,
            Submission,
            SubmissionDocument,
            SubmissionMessage,
            Verification,
        )
        from tests.helpers import FakeTransport

        submission_id = make_submission(
            documents=[{"document_type": "privacy_policy", "extracted_text": "Policy"}],
        )
        verification_id = VerificationService(make_pipeline()).start_verification(submission_id)["id"]
        CarrierService(FakeTransport()).submit_to_carrier(submission_id)
        keep_id = make_submission()

        submissions.delete_submission(submission_id, user_id="user-1")

        assert Submission.get(submission_id) is None
        assert SubmissionMessage.find_by_submission_id(submission_id) == []
        assert SubmissionDocument.find_by_submission_id(submission_id) == []
        assert Verification.find_by_id(verification_id) is None
        assert ComplianceReport.find_latest_by_submission_id(submission_id) is None
        assert CarrierSubmission.find_by_submission_id(submission_id) == []
        assert Submission.get(keep_id) is not None

    def test_delete_requires_owner(self, app, submissions, make_submission):
        from dlc_review.errors import AccessDenied
        from dlc_review.web.db.models import Submission

        submission_id = make_submission()

        with pytest.raises(AccessDenied):
            submissions.delete_submission(submission_id, user_id="intruder")
        assert Submission.get(submission_id) is not None
