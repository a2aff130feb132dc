# ============================================================================
# api/analyses.py - CV Upload & Analysis Routes
# ============================================================================

from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.database import get_db
from cvintelligence.models.user import User
from cvintelligence.api.deps import get_current_user, get_scorer, get_storage
from cvintelligence.schemas.analysis import AnalysisResponse, UploadCvResponse
from cvintelligence.services.analysis import AnalysisService
from cvintelligence.services.scoring import CvScorer
from cvintelligence.services.storage import StorageService

router = APIRouter(prefix="/api", tags=["analyses"])


@router.post("/upload-cv", response_model=UploadCvResponse)
async def upload_cv(
    cv: UploadFile = File(...),
    target_role: Optional[str] = Form(None, alias="targetRole"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    scorer: CvScorer = Depends(get_scorer),
    storage: StorageService = Depends(get_storage),
):
    """Analyze an uploaded CV, consuming one credit on success."""
    outcome = await AnalysisService(db, scorer, storage).analyze(user.id, cv, target_role)
    return UploadCvResponse(
        analysis_id=outcome.analysis_id,
        analysis=outcome.result,
        credits_remaining=outcome.credits_remaining,
    )


@router.get("/analyses", response_model=List[AnalysisResponse])
async def list_analyses(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await AnalysisService(db, scorer=None).list_for_user(user.id)


@router.get("/analyses/{analysis_id}", response_model=AnalysisResponse)
async def get_analysis(analysis_id: int, user: User = Depends(get_current_user),
                       db: AsyncSession = Depends(get_db)):
    return await AnalysisService(db, scorer=None).get_for_user(user.id, analysis_id)
