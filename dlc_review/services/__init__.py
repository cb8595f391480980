from dlc_review.services.carrier_service import CarrierService, CarrierTransport, CarrierTransportError
from dlc_review.services.submission_service import SubmissionService
from dlc_review.services.verification_service import VerificationService, build_pipeline

__all__ = [
    'CarrierService',
    'CarrierTransport',
    'CarrierTransportError',
    'SubmissionService',
    'VerificationService',
    'build_pipeline',
]
