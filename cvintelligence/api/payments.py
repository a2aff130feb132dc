# ============================================================================
# api/payments.py - Payment Routes
# ============================================================================

from typing import List, Optional
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.config import settings
from cvintelligence.core.database import get_db
from cvintelligence.models.user import User
from cvintelligence.api.deps import get_current_user
from cvintelligence.schemas.payment import (
    CreditPurchaseResponse,
    PaymentConfigResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    ProductPackageResponse,
)
from cvintelligence.services.packages import PackageService
from cvintelligence.services.payment import PaymentService

router = APIRouter(prefix="/api", tags=["payments"])


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(data: PaymentIntentRequest, user: User = Depends(get_current_user),
                                db: AsyncSession = Depends(get_db)):
    return await PaymentService(db).create_payment_intent(user, data.credits)


@router.post("/webhook")
async def stripe_webhook(request: Request, stripe_signature: Optional[str] = Header(None),
                         db: AsyncSession = Depends(get_db)):
    payload = await request.body()
    await PaymentService(db).handle_webhook(payload, stripe_signature)
    return {"received": True}


@router.get("/payments/config", response_model=PaymentConfigResponse)
async def payment_config(db: AsyncSession = Depends(get_db)):
    payment_service = PaymentService(db)
    return PaymentConfigResponse(
        enabled=await payment_service.payments_enabled(),
        public_key=await payment_service.settings_store.resolve("STRIPE_PUBLIC_KEY"),
        unit_price_cents=settings.CREDIT_UNIT_PRICE_CENTS,
        currency=settings.CURRENCY,
    )


@router.get("/packages", response_model=List[ProductPackageResponse])
async def list_packages(db: AsyncSession = Depends(get_db)):
    return await PackageService(db).list(active_only=True)


@router.get("/purchases", response_model=List[CreditPurchaseResponse])
async def list_purchases(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await PaymentService(db).list_purchases(user.id)
