# ============================================================================
# schemas/payment.py - Payment & Package Schemas
# ============================================================================

from datetime import datetime
from typing import List, Optional
from pydantic import Field
from cvintelligence.core.config import settings
from cvintelligence.schemas.base import CamelModel


class PaymentIntentRequest(CamelModel):
    credits: int = Field(gt=0, le=settings.MAX_CREDITS_PER_PURCHASE)


class PaymentIntentResponse(CamelModel):
    client_secret: str


class PaymentConfigResponse(CamelModel):
    enabled: bool
    public_key: Optional[str]
    unit_price_cents: int
    currency: str


class CreditPurchaseResponse(CamelModel):
    id: int
    package_name: str
    credits_purchased: int
    amount_paid_cents: int
    currency: str
    stripe_payment_intent_id: str
    created_at: Optional[datetime]


class ProductPackageRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    credits: int = Field(gt=0, le=settings.MAX_CREDITS_PER_PURCHASE)
    price_cents: int = Field(gt=0)
    original_price_cents: Optional[int] = Field(default=None, gt=0)
    is_popular: bool = False
    is_active: bool = True
    features: List[str] = []


class ProductPackageResponse(ProductPackageRequest):
    id: int
    created_at: Optional[datetime]
