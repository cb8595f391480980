from dlc_review.rag.evaluator import Evaluator, Finding
from dlc_review.rag.schemas import FindingSchema

__all__ = ['Evaluator', 'Finding', 'FindingSchema']
