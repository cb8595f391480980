"""
Pytest fixtures for dlc_review tests.

Provides:
- Flask app fixture with in-memory SQLite
- Scripted LocalModel responders (no network)
- Submission / verification factories
- Pipeline and service builders
"""

import os
import sys

import pytest

# Set testing environment before importing the package
os.environ["TESTING"] = "true"
os.environ["GUIDELINE_STORE"] = "memory"

# Add the project directory to the Python path
project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_dir not in sys.path:
    sys.path.insert(0, project_dir)

from tests.helpers import ScriptedResponder  # noqa: E402


# ============================================================================
# Flask App Fixtures
# ============================================================================

@pytest.fixture
def app():
    """Create Flask application for testing."""
    from dlc_review.config import TestingConfig
    from dlc_review.web import create_app
    from dlc_review.web.db import db

    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def db_session(app):
    """Database session for direct DB access in tests."""
    from dlc_review.web.db import db
    return db.session


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def responder():
    return ScriptedResponder()


@pytest.fixture
def local_model(responder):
    from dlc_review.llm import LocalModel
    return LocalModel(responder=responder, dimensions=64)


@pytest.fixture
def make_submission(app):
    """Factory: create a submission with message units, return its id."""
    from dlc_review.services.submission_service import SubmissionService

    def _make(messages=("Acme Retail: your order has shipped. Reply STOP to opt out.",),
              documents=(), images=(), **overrides):
        values = {
            "user_id": "user-1",
            "company_id": "company-1",
            "business_name": "Acme Retail",
            "business_type": "retail",
            "use_case": "Order and shipping notifications",
            "opt_in_method": "web_form",
        }
        values.update(overrides)
        submission = SubmissionService().create_submission(
            **values,
            messages=[{"message_text": text, "opt_in_type": "web_form"} for text in messages],
            documents=list(documents),
            images=list(images),
        )
        return submission.id

    return _make


@pytest.fixture
def make_verification(app):
    """Factory: create a Verification row directly (default PENDING)."""
    from dlc_review.web.db.models import Submission, Verification

    def _make(submission_id, status="PENDING", **fields):
        verification = Verification.create(
            submission_id=submission_id,
            status=status,
            completed_steps=fields.pop("completed_steps", []),
            step_durations=fields.pop("step_durations", {}),
            **fields
        )
        submission = Submission.get(submission_id)
        submission.verification_id = verification.id
        submission.save()
        return verification.id

    return _make


@pytest.fixture
def make_pipeline(local_model):
    """Factory: pipeline on an in-memory store with the scripted model."""
    from dlc_review.guidelines import GuidelineRetriever, InMemoryGuidelineStore
    from dlc_review.rag.evaluator import Evaluator
    from dlc_review.workers.verification_pipeline import VerificationPipeline

    def _make(model=None, store=None, model_timeout=5.0, step_timeout=30.0, max_workers=4, **kwargs):
        model = model or local_model
        store = store or InMemoryGuidelineStore(model)
        retriever = GuidelineRetriever(store, timeout=5.0)
        evaluator = Evaluator(model, timeout=model_timeout)
        return VerificationPipeline(
            retriever, evaluator,
            max_workers=max_workers,
            step_timeout=step_timeout,
            **kwargs
        )

    return _make
