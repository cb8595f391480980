from .base import BaseModel as Model
from .submission import (
    Submission,
    SubmissionStatus,
    SubmissionMessage,
    SubmissionDocument,
    SubmissionImage,
    EvaluationStatus,
)
from .verification import (
    Verification,
    VerificationStatus,
    VerificationStep,
    PIPELINE_STEPS,
    TERMINAL_STATUSES,
)
from .report import ComplianceReport, ApprovalLikelihood, RecommendationPriority
from .carrier import CarrierSubmission, CarrierStatus
