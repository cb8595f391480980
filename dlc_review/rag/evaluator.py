"""
Evaluator

Judges one content unit (message, document or image metadata) against
retrieved carrier guideline text and returns a structured finding.

Output schema:
{
    "compliant": true | false,
    "issues": ["..."],
    "suggestions": ["..."]
}

Failure handling:
- ModelUnavailable: retried once, then EvaluationError
- Malformed output: retried once with a stricter instruction, then EvaluationError
- ModelTimeout: not handled here; the run fails with TIMEOUT

judge() only talks to the model and is safe to call from worker threads.
record_finding() / record_error() write to the unit and must run on the
thread that owns the database session.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dlc_review import config
from dlc_review.errors import EvaluationError, ModelTimeout, ModelUnavailable
from dlc_review.llm.base import LanguageModel
from dlc_review.logging_utils import structured_log
from dlc_review.rag.schemas import FindingSchema
from dlc_review.timeouts import call_with_timeout


@dataclass
class Finding:
    """Judgement for one content unit."""
    compliant: bool
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    raw_response: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compliant": self.compliant,
            "issues": self.issues,
            "suggestions": self.suggestions,
        }


class Evaluator:
    """
    Content unit evaluator.

    Uses the injected LanguageModel with strict instructions to judge only
    against the provided guidelines.
    """

    SYSTEM_PROMPT = """You are a 10DLC compliance analyst. Your job is to decide whether a piece of SMS campaign content complies with US carrier requirements.

CRITICAL RULES:
1. Judge the content ONLY against the provided carrier guidelines.
2. Check business identification, opt-in disclosure, opt-out instructions (STOP), prohibited content and misleading claims.
3. List every concrete problem in issues[]; an empty list means no problems were found.
4. For every issue, give an actionable fix in suggestions[].

You must return valid JSON only. No markdown, no explanation outside JSON."""

    STRICT_INSTRUCTION = """

Your previous answer could not be parsed. Respond with ONE JSON object and nothing else.
"compliant" MUST be the JSON literal true or false (not a string).
"issues" and "suggestions" MUST be arrays of strings."""

    def __init__(self, model: LanguageModel, timeout: Optional[float] = config.MODEL_TIMEOUT_SECONDS):
        self.model = model
        self.timeout = timeout

    def _build_prompt(
        self,
        unit_kind: str,
        classifier: Optional[str],
        text: str,
        guideline_text: str,
        use_case: Optional[str] = None,
    ) -> str:
        """Build the user prompt with content and guideline context."""
        classifier_str = classifier or "unspecified"
        use_case_str = f"\nRegistered use case: {use_case}" if use_case else ""

        return f"""CONTENT TO REVIEW:
Kind: {unit_kind}
Type: {classifier_str}{use_case_str}
Text:
{text}

CARRIER GUIDELINES:
{guideline_text}

Evaluate the content and return JSON with this exact structure:
{{
    "compliant": true | false,
    "issues": ["list of compliance problems found"],
    "suggestions": ["list of concrete fixes"]
}}"""

    def _parse_response(self, response_text: str) -> Finding:
        """
        Parse LLM response into a Finding.

        Raises:
            ValueError: No JSON object, invalid JSON, or schema mismatch
        """
        response_text = response_text or ""
        json_start = response_text.find('{')
        json_end = response_text.rfind('}') + 1
        if json_start < 0 or json_end <= json_start:
            raise ValueError("No JSON found in response")

        data = json.loads(response_text[json_start:json_end])
        parsed = FindingSchema.model_validate(data)

        return Finding(
            compliant=parsed.compliant,
            issues=list(parsed.issues),
            suggestions=list(parsed.suggestions),
            raw_response=response_text,
        )

    def _generate(self, prompt: str, unit_id: Optional[str]) -> str:
        """Call the model, retrying once on ModelUnavailable."""
        for attempt in (1, 2):
            try:
                return call_with_timeout(
                    lambda: self.model.generate(prompt, system=self.SYSTEM_PROMPT),
                    self.timeout,
                    ModelTimeout,
                    description=f"model generate ({self.model.NAME})",
                )
            except ModelUnavailable as e:
                if attempt == 2:
                    raise EvaluationError(f"Model unavailable after retry: {e}", unit_id=unit_id) from e
                structured_log("WARNING", "model_unavailable_retry", unit_id=unit_id, error=str(e))

    def judge(
        self,
        unit_kind: str,
        classifier: Optional[str],
        text: str,
        guideline_text: str,
        unit_id: Optional[str] = None,
        use_case: Optional[str] = None,
    ) -> Finding:
        """
        Judge one unit. Does not touch the database.

        Raises:
            EvaluationError: unit could not be judged
            ModelTimeout: model did not answer in time
        """
        if not text or not text.strip():
            raise EvaluationError("Content unit has no text to evaluate", unit_id=unit_id)

        prompt = self._build_prompt(unit_kind, classifier, text, guideline_text, use_case)

        response_text = self._generate(prompt, unit_id)
        try:
            return self._parse_response(response_text)
        except ValueError as e:
            structured_log("WARNING", "malformed_output_retry", unit_id=unit_id, error=str(e)[:200])

        response_text = self._generate(prompt + self.STRICT_INSTRUCTION, unit_id)
        try:
            return self._parse_response(response_text)
        except ValueError as e:
            raise EvaluationError(f"Malformed model output after retry: {e}", unit_id=unit_id) from e

    @staticmethod
    def record_finding(unit, run_id: str, finding: Finding) -> bool:
        """Write a finding to the unit. Returns False if already resolved in this run."""
        return unit.record_finding(run_id, finding.compliant, finding.issues, finding.suggestions)

    @staticmethod
    def record_error(unit, run_id: str, error: Exception) -> bool:
        """Mark the unit INDETERMINATE for this run."""
        return unit.record_indeterminate(run_id, str(error))

    def evaluate(self, unit, guideline_text: str, run_id: str, use_case: Optional[str] = None) -> Optional[Finding]:
        """
        Judge a unit and record the result on it (single-threaded path).

        Returns the Finding, or None if the unit ended up INDETERMINATE.
        ModelTimeout propagates.
        """
        if unit.is_resolved_for(run_id):
            return None

        try:
            finding = self.judge(
                unit.kind, unit.classifier, unit.evaluation_text(), guideline_text,
                unit_id=unit.id, use_case=use_case,
            )
        except EvaluationError as e:
            self.record_error(unit, run_id, e)
            return None

        self.record_finding(unit, run_id, finding)
        return finding
