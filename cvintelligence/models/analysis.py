# ============================================================================
# models/analysis.py - CV Analysis Database Model
# ============================================================================

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cvintelligence.core.database import Base


class CvAnalysis(Base):
    """One completed analysis. Rows are append-only."""

    __tablename__ = "cv_analyses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    file_name = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    target_role = Column(String, nullable=True)
    score = Column(Integer, nullable=False)
    analysis_result = Column(JSON, nullable=False)
    previous_analysis_id = Column(Integer, ForeignKey("cv_analyses.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", back_populates="analyses")
    previous_analysis = relationship("CvAnalysis", remote_side=[id])
