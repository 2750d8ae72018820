"""Analysis result models validated with pydantic."""

from typing import List, Optional

from pydantic import BaseModel, Field


class GrammarCorrection(BaseModel):
    original: str
    correction: str
    explanation: str = ""


class AnalysisResult(BaseModel):
    """Structured grammar and fluency feedback for one transcript."""
    grammar_corrections: List[GrammarCorrection]
    fluency_score: int = Field(..., ge=0, le=100, strict=True)
    tips: List[str] = Field(default_factory=list)
    positive_feedback: str = ""
    reply: Optional[str] = None
