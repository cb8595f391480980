"""
Pydantic schema for evaluator output.

Strict mode rejects silent coercion ("yes" -> True, 1 -> True); a finding
whose compliant flag is not a real JSON boolean counts as malformed output.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class FindingSchema(BaseModel):
    """Schema for a single content unit judgement.

    Expected structure from the model:
    {
        "compliant": false,
        "issues": ["Message does not include opt-out instructions"],
        "suggestions": ["Append 'Reply STOP to unsubscribe'"]
    }
    """
    model_config = ConfigDict(strict=True)

    compliant: bool
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
