"""
Unit tests for the Evaluator.

Tests:
- Prompt building
- Response parsing (strict schema, JSON extraction)
- Retry rules for malformed output and unavailable models
- Timeouts escape
- Recording findings on content units
"""

import time

import pytest

from tests.helpers import COMPLIANT, MALFORMED, NON_COMPLIANT, ScriptedResponder


def _evaluator(responder, timeout=5.0):
    from dlc_review.llm import LocalModel
    from dlc_review.rag.evaluator import Evaluator
    return Evaluator(LocalModel(responder=responder, dimensions=16), timeout=timeout)


class TestPromptAndParsing:

    def test_build_prompt(self):
        evaluator = _evaluator(ScriptedResponder())

        prompt = evaluator._build_prompt(
            "message", "web_form", "Acme: Reply STOP to opt out.", "Carrier Guidelines for retail:", "Order updates"
        )

        assert "Kind: message" in prompt
        assert "Type: web_form" in prompt
        assert "Acme: Reply STOP to opt out." in prompt
        assert "CARRIER GUIDELINES:" in prompt
        assert "Registered use case: Order updates" in prompt

    def test_parse_valid_response(self):
        evaluator = _evaluator(ScriptedResponder())

        finding = evaluator._parse_response(NON_COMPLIANT)

        assert finding.compliant is False
        assert finding.issues == ["Message does not include opt-out instructions"]
        assert finding.suggestions == ["Append 'Reply STOP to opt out'"]

    def test_parse_response_with_surrounding_text(self):
        evaluator = _evaluator(ScriptedResponder())

        finding = evaluator._parse_response(f"Here is my analysis:\n```json\n{COMPLIANT}\n```")

        assert finding.compliant is True
        assert finding.issues == []

    @pytest.mark.parametrize("response_text", [
        MALFORMED,
        '{"compliant": "yes", "issues": [], "suggestions": []}',
        '{"compliant": 1, "issues": [], "suggestions": []}',
        '{"issues": [], "suggestions": []}',
        '{"compliant": true, "issues": "none", "suggestions": []}',
        '{"compliant": true, "issues": [}',
        "",
    ])
    def test_parse_malformed_response(self, response_text):
        evaluator = _evaluator(ScriptedResponder())

        with pytest.raises(ValueError):
            evaluator._parse_response(response_text)


class TestJudge:

    def test_compliant_finding(self):
        responder = ScriptedResponder(default=COMPLIANT)

        finding = _evaluator(responder).judge("message", "web_form", "Acme: Reply STOP.", "guidelines")

        assert finding.compliant is True
        assert len(responder.calls) == 1

    def test_malformed_output_retried_with_stricter_instruction(self):
        from dlc_review.rag.evaluator import Evaluator

        answers = iter([MALFORMED, NON_COMPLIANT])
        responder = ScriptedResponder(default=lambda prompt: next(answers))

        finding = _evaluator(responder).judge("message", "web_form", "Buy now!!!", "guidelines")

        assert finding.compliant is False
        assert len(responder.calls) == 2
        assert Evaluator.STRICT_INSTRUCTION not in responder.calls[0]
        assert Evaluator.STRICT_INSTRUCTION in responder.calls[1]

    def test_second_malformed_output_raises_evaluation_error(self):
        from dlc_review.errors import EvaluationError

        responder = ScriptedResponder(default=MALFORMED)

        with pytest.raises(EvaluationError) as exc_info:
            _evaluator(responder).judge("message", "web_form", "Buy now!!!", "guidelines", unit_id="unit-1")

        assert exc_info.value.unit_id == "unit-1"
        assert len(responder.calls) == 2

    def test_model_unavailable_retried_once(self):
        from dlc_review.errors import ModelUnavailable

        answers = iter([ModelUnavailable("503"), COMPLIANT])

        def flaky(prompt):
            answer = next(answers)
            if isinstance(answer, Exception):
                raise answer
            return answer

        responder = ScriptedResponder(default=flaky)

        finding = _evaluator(responder).judge("message", None, "Hello from Acme", "guidelines")

        assert finding.compliant is True
        assert len(responder.calls) == 2

    def test_model_unavailable_twice_raises_evaluation_error(self):
        from dlc_review.errors import EvaluationError, ModelUnavailable

        responder = ScriptedResponder(default=ModelUnavailable("503"))

        with pytest.raises(EvaluationError):
            _evaluator(responder).judge("message", None, "Hello from Acme", "guidelines")

        assert len(responder.calls) == 2

    def test_no_responder_means_unavailable(self):
        from dlc_review.errors import EvaluationError
        from dlc_review.llm import LocalModel
        from dlc_review.rag.evaluator import Evaluator

        with pytest.raises(EvaluationError):
            Evaluator(LocalModel(dimensions=16)).judge("message", None, "Hello", "guidelines")

    def test_model_timeout_escapes(self):
        from dlc_review.errors import ModelTimeout

        responder = ScriptedResponder(default=lambda prompt: time.sleep(1.0) or COMPLIANT)

        with pytest.raises(ModelTimeout):
            _evaluator(responder, timeout=0.05).judge("message", None, "Hello", "guidelines")

        assert len(responder.calls) == 1

    def test_blank_text_is_evaluation_error(self):
        from dlc_review.errors import EvaluationError

        responder = ScriptedResponder()

        with pytest.raises(EvaluationError):
            _evaluator(responder).judge("document", "privacy_policy", "  ", "guidelines")

        assert responder.calls == []


class TestEvaluateAndRecord:

    def test_evaluate_records_finding(self, app, make_submission):
        from dlc_review.web.db import db
        from dlc_review.web.db.models import EvaluationStatus, Submission

        submission_id = make_submission(messages=["Acme: 20% off today!"])
        unit = Submission.get(submission_id).messages[0]
        responder = ScriptedResponder(default=NON_COMPLIANT)

        finding = _evaluator(responder).evaluate(unit, "guidelines", "run-1")
        db.session.commit()

        assert finding.compliant is False
        assert unit.compliant is False
        assert unit.evaluation_status == EvaluationStatus.EVALUATED.value
        assert unit.evaluated_run_id == "run-1"
        assert unit.issues == ["Message does not include opt-out instructions"]

    def test_evaluate_marks_indeterminate(self, app, make_submission):
        from dlc_review.web.db.models import EvaluationStatus, Submission

        submission_id = make_submission(messages=["Acme: 20% off today!"])
        unit = Submission.get(submission_id).messages[0]
        responder = ScriptedResponder(default=MALFORMED)

        assert _evaluator(responder).evaluate(unit, "guidelines", "run-1") is None
        assert unit.compliant is None
        assert unit.evaluation_status == EvaluationStatus.INDETERMINATE.value
        assert "Malformed" in unit.evaluation_error

    def test_finding_written_once_per_run(self, app, make_submission):
        from dlc_review.rag.evaluator import Evaluator, Finding
        from dlc_review.web.db.models import Submission

        submission_id = make_submission()
        unit = Submission.get(submission_id).messages[0]

        assert Evaluator.record_finding(unit, "run-1", Finding(compliant=True)) is True
        assert Evaluator.record_finding(unit, "run-1", Finding(compliant=False)) is False
        assert Evaluator.record_error(unit, "run-1", ValueError("late")) is False
        assert unit.compliant is True

        # A new run may judge the unit again
        assert Evaluator.record_finding(unit, "run-2", Finding(compliant=False)) is True
        assert unit.compliant is False
