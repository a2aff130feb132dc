# ============================================================================
# schemas/analysis.py - CV Analysis Schemas
# ============================================================================

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import Field, field_validator
from cvintelligence.schemas.base import CamelModel

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


class Suggestion(CamelModel):
    category: str
    recommendation: str
    priority: Literal["high", "medium", "low"] = "medium"

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, value):
        return str(value).strip().lower() if value is not None else "medium"


class KeywordOptimization(CamelModel):
    missing: List[str] = []
    present: List[str] = []


class FormatFeedback(CamelModel):
    rating: int = Field(ge=1, le=5)
    comments: List[str] = []


class ExtractedData(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    summary: Optional[str] = None
    recent_experience: Optional[str] = None


class ComparativeFeedback(CamelModel):
    improvements_made: List[str] = []
    points_to_still_improve: List[str] = []


class ActionableExample(CamelModel):
    before: str
    after: str
    explanation: str


class AnalysisResult(CamelModel):
    """Structured critique returned by the scoring oracle."""

    score: int = Field(ge=0, le=100)
    overall_feedback: str
    strengths: List[str] = []
    weaknesses: List[str] = []
    suggestions: List[Suggestion] = []
    keyword_optimization: KeywordOptimization = Field(default_factory=KeywordOptimization)
    format_feedback: Optional[FormatFeedback] = None
    extracted_data: Optional[ExtractedData] = None
    comparative_feedback: Optional[ComparativeFeedback] = None
    actionable_examples: List[ActionableExample] = []

    @field_validator("suggestions")
    @classmethod
    def sort_by_priority(cls, value: List[Suggestion]) -> List[Suggestion]:
        return sorted(value, key=lambda s: PRIORITY_ORDER[s.priority])


class AnalysisResponse(CamelModel):
    id: int
    user_id: int
    file_name: str
    file_size: int
    target_role: Optional[str]
    score: int
    analysis_result: dict
    previous_analysis_id: Optional[int]
    created_at: Optional[datetime]


class UploadCvResponse(CamelModel):
    analysis_id: int
    analysis: AnalysisResult
    credits_remaining: int
