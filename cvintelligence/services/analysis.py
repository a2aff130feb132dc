# ============================================================================
# services/analysis.py - CV Analysis Workflow
# ============================================================================

import logging
from dataclasses import dataclass
from typing import List, Optional
from fastapi import UploadFile
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.errors import (
    CvIntelligenceError,
    Forbidden,
    InsufficientCredits,
    NotFound,
    PersistenceFailure,
    ScoringUnavailable,
)
from cvintelligence.models.analysis import CvAnalysis
from cvintelligence.models.user import User
from cvintelligence.schemas.analysis import AnalysisResult
from cvintelligence.services.scoring import CvScorer, ScoringDocument, load_scoring_context
from cvintelligence.services.settings_store import SettingsStore
from cvintelligence.services.storage import StorageService, StoredUpload

logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
    analysis_id: int
    result: AnalysisResult
    credits_remaining: int


class AnalysisService:
    """Upload -> credit check -> score -> persist + debit -> cleanup.

    Persisting the CvAnalysis row and debiting the credit happen in a single
    transaction, so a row exists if and only if a credit was consumed. Every
    failure leaves the balance untouched, and the temporary file is removed
    on every path.
    """

    def __init__(self, db: AsyncSession, scorer: Optional[CvScorer] = None, storage: Optional[StorageService] = None):
        self.db = db
        self.scorer = scorer
        self.storage = storage
        self.settings_store = SettingsStore(db)

    async def analyze(self, user_id: int, file: UploadFile, target_role: Optional[str] = None) -> AnalysisOutcome:
        storage = self.storage or StorageService()
        stored: Optional[StoredUpload] = None
        try:
            stored = await storage.save_upload(file, user_id)

            user = await self.db.get(User, user_id)
            if user is None:
                raise NotFound("Usuário não encontrado")
            if user.credits <= 0:
                raise InsufficientCredits()

            previous = await self.latest_for_user(user_id)
            context = await load_scoring_context(
                self.settings_store,
                (target_role or "").strip() or None,
                previous.analysis_result if previous else None,
            )
            document = ScoringDocument(
                path=stored.path,
                file_name=stored.original_filename,
                extension=stored.extension,
                content_type=stored.content_type,
            )

            try:
                result = await self.scorer.score(document, context)
            except CvIntelligenceError:
                raise
            except Exception:
                logger.exception(f"Scorer failed for user {user_id}")
                raise ScoringUnavailable()

            outcome = await self._persist_and_debit(user_id, stored, context.target_role, result,
                                                    previous.id if previous else None)
            logger.info(f"Analysis {outcome.analysis_id} stored for user {user_id} "
                        f"(score {result.score}, {outcome.credits_remaining} credits left)")
            return outcome
        finally:
            if stored is not None:
                storage.cleanup(stored.path)

    async def _persist_and_debit(self, user_id: int, stored: StoredUpload, target_role: Optional[str],
                                 result: AnalysisResult, previous_id: Optional[int]) -> AnalysisOutcome:
        try:
            analysis = CvAnalysis(
                user_id=user_id,
                file_name=stored.original_filename,
                file_size=stored.size,
                target_role=target_role,
                score=result.score,
                analysis_result=result.model_dump(mode="json", by_alias=True),
                previous_analysis_id=previous_id,
            )
            self.db.add(analysis)
            await self.db.flush()

            # Conditional decrement: concurrent uploads cannot push the balance below zero
            debit = await self.db.execute(
                update(User)
                .where(User.id == user_id, User.credits > 0)
                .values(credits=User.credits - 1)
                .returning(User.credits)
                .execution_options(synchronize_session=False)
            )
            remaining = debit.scalar_one_or_none()
            if remaining is None:
                await self.db.rollback()
                raise InsufficientCredits()

            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to persist analysis for user {user_id}")
            raise PersistenceFailure()

        return AnalysisOutcome(analysis_id=analysis.id, result=result, credits_remaining=remaining)

    async def latest_for_user(self, user_id: int) -> Optional[CvAnalysis]:
        result = await self.db.execute(
            select(CvAnalysis)
            .where(CvAnalysis.user_id == user_id)
            .order_by(CvAnalysis.created_at.desc(), CvAnalysis.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: int) -> List[CvAnalysis]:
        result = await self.db.execute(
            select(CvAnalysis)
            .where(CvAnalysis.user_id == user_id)
            .order_by(CvAnalysis.created_at.desc(), CvAnalysis.id.desc())
        )
        return list(result.scalars().all())

    async def get_for_user(self, user_id: int, analysis_id: int) -> CvAnalysis:
        analysis = await self.db.get(CvAnalysis, analysis_id)
        if analysis is None:
            raise NotFound("Análise não encontrada")
        if analysis.user_id != user_id:
            raise Forbidden()
        return analysis
