"""
10DLC compliance review.

Verification pipeline for brand/campaign submissions: guideline retrieval,
AI-assisted evaluation of each content unit, and report assembly with a
scored likelihood of carrier approval.
"""

__version__ = "0.1.0"
