"""
Report Assembler

Aggregates per-unit findings of one verification run into an immutable
ComplianceReport.

Scoring:
- compliant unit = 1.0, non-compliant unit = 0.0
- indeterminate units (and units not resolved in this run) are excluded
- overall_score = mean over the remaining units
- messages_score, documents_score, images_score: same, per content kind
- no determinate units -> ReportUnavailable (run fails EVALUATION_FAILED)

build() does not touch the session; save() adds the report and the
submission's score. The pipeline calls save() inside the transaction that
moves the run to COMPLETED, so a run that loses that write leaves no report.

Likelihood:
    score >= 0.85 -> HIGH
    score >= 0.5  -> MEDIUM
    otherwise     -> LOW
"""

import logging
from typing import Any, Dict, List, Optional

from dlc_review.errors import ReportUnavailable, RunAborted
from dlc_review.logging_utils import structured_log
from dlc_review.web.db import db
from dlc_review.web.db.models import (
    ApprovalLikelihood,
    ComplianceReport,
    RecommendationPriority,
    Submission,
)

logger = logging.getLogger(__name__)

HIGH_THRESHOLD = 0.85
MEDIUM_THRESHOLD = 0.5

COMPONENTS = {"message": "messages", "document": "documents", "image": "images"}
PRIORITY_ORDER = {RecommendationPriority.HIGH.value: 0, RecommendationPriority.MEDIUM.value: 1}


def approval_likelihood(score: float) -> ApprovalLikelihood:
    if score >= HIGH_THRESHOLD:
        return ApprovalLikelihood.HIGH
    if score >= MEDIUM_THRESHOLD:
        return ApprovalLikelihood.MEDIUM
    return ApprovalLikelihood.LOW


def compliance_score(units: List) -> Optional[float]:
    """Fraction of compliant units, None when there are none."""
    if not units:
        return None
    return sum(1 for unit in units if unit.compliant) / len(units)


def component_of(unit) -> str:
    return COMPONENTS.get(unit.kind, unit.kind)


def critical_issues(units: List) -> List[Dict[str, Any]]:
    """Issues of non-compliant units, paired with the unit's first suggestion."""
    issues = []
    for unit in units:
        if unit.compliant:
            continue
        suggestions = unit.suggestions or []
        for description in unit.issues or []:
            issues.append({
                "component": component_of(unit),
                "unit_id": unit.id,
                "description": description,
                "recommendation": suggestions[0] if suggestions else None,
            })
    return issues


def recommendations(units: List) -> List[Dict[str, Any]]:
    """
    Suggestions of all determinate units, deduplicated per component.

    A suggestion made for any non-compliant unit is HIGH priority; HIGH comes first.
    """
    seen = {}
    result = []
    for unit in units:
        priority = RecommendationPriority.MEDIUM if unit.compliant else RecommendationPriority.HIGH
        for description in unit.suggestions or []:
            key = (component_of(unit), description)
            if key in seen:
                if priority is RecommendationPriority.HIGH:
                    seen[key]["priority"] = priority.value
                continue
            seen[key] = {
                "component": component_of(unit),
                "unit_id": unit.id,
                "priority": priority.value,
                "description": description,
            }
            result.append(seen[key])
    result.sort(key=lambda rec: PRIORITY_ORDER[rec["priority"]])
    return result


class ReportAssembler:

    def build(self, submission_id: str, verification_id: str) -> ComplianceReport:
        """
        Build the report for a finished evaluation step without persisting it.

        Raises:
            ReportUnavailable: no unit has a determinate finding in this run
            RunAborted: submission no longer exists
        """
        submission = Submission.get(submission_id)
        if submission is None:
            raise RunAborted(f"Submission {submission_id} no longer exists")

        units = submission.content_units()
        determinate = [
            unit for unit in units
            if unit.is_resolved_for(verification_id) and unit.compliant is not None
        ]
        indeterminate_count = len(units) - len(determinate)

        if not determinate:
            raise ReportUnavailable(
                f"No determinate findings for submission {submission_id} "
                f"({len(units)} units, all indeterminate)"
            )

        score = compliance_score(determinate)
        likelihood = approval_likelihood(score)

        report = ComplianceReport(
            submission_id=submission_id,
            verification_id=verification_id,
            revision=ComplianceReport.next_revision(submission_id),
            overall_score=score,
            approval_likelihood=likelihood.value,
            messages_score=compliance_score([u for u in determinate if u.kind == "message"]),
            documents_score=compliance_score([u for u in determinate if u.kind == "document"]),
            images_score=compliance_score([u for u in determinate if u.kind == "image"]),
            critical_issues=critical_issues(determinate),
            recommendations=recommendations(determinate),
            findings=[unit.finding_dict() for unit in units],
            evaluated_units=len(determinate),
            indeterminate_units=indeterminate_count,
        )
        return report

    def save(self, report: ComplianceReport, commit: bool = True) -> ComplianceReport:
        submission = Submission.get(report.submission_id)
        if submission is None:
            raise RunAborted(f"Submission {report.submission_id} no longer exists")

        submission.compliance_score = report.overall_score
        db.session.add(report)
        if commit:
            db.session.commit()

        structured_log(
            "INFO", "report_assembled",
            submission_id=report.submission_id,
            verification_id=report.verification_id,
            revision=report.revision,
            overall_score=round(report.overall_score, 4),
            approval_likelihood=report.approval_likelihood,
            evaluated_units=report.evaluated_units,
            indeterminate_units=report.indeterminate_units,
        )
        return report

    def assemble(self, submission_id: str, verification_id: str) -> ComplianceReport:
        """Build and commit the report in one go."""
        return self.save(self.build(submission_id, verification_id))
