"""
Verification workers.

- VerificationPipeline: drives one run PENDING → RUNNING → COMPLETED/FAILED
- ReportAssembler: scores findings into a ComplianceReport
- StallSweep: moves runs stuck in RUNNING to FAILED/STALLED
"""

from dlc_review.workers.report_assembler import ReportAssembler, approval_likelihood
from dlc_review.workers.stall_sweep import StallSweep, stall_threshold_seconds
from dlc_review.workers.verification_pipeline import VerificationPipeline

__all__ = [
    'ReportAssembler',
    'StallSweep',
    'VerificationPipeline',
    'approval_likelihood',
    'stall_threshold_seconds',
]
