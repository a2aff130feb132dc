# ============================================================================
# services/payment.py - Stripe Payment Service
# ============================================================================

import json
import logging
from typing import List, Optional
import stripe
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.core.config import settings
from cvintelligence.core.errors import (
    InvalidSignature,
    PaymentProviderError,
    PaymentsUnavailable,
)
from cvintelligence.models.package import ProductPackage
from cvintelligence.models.payment import CreditPurchase
from cvintelligence.models.user import User
from cvintelligence.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings_store = SettingsStore(db)

    async def payments_enabled(self) -> bool:
        if not await self.settings_store.is_enabled("STRIPE_PAYMENTS_ENABLED", default=True):
            return False
        return bool(await self.settings_store.resolve("STRIPE_SECRET_KEY"))

    async def package_name_for(self, credits: int) -> str:
        result = await self.db.execute(
            select(ProductPackage.name)
            .where(ProductPackage.credits == credits, ProductPackage.is_active.is_(True))
            .order_by(ProductPackage.id)
            .limit(1)
        )
        return result.scalar_one_or_none() or f"{credits} créditos"

    async def create_payment_intent(self, user: User, credits: int) -> dict:
        """Create a Stripe PaymentIntent. Local state is not touched."""
        if not await self.settings_store.is_enabled("STRIPE_PAYMENTS_ENABLED", default=True):
            raise PaymentsUnavailable()
        secret_key = await self.settings_store.resolve("STRIPE_SECRET_KEY")
        if not secret_key:
            logger.error("STRIPE_SECRET_KEY not set. Payment functionality is disabled.")
            raise PaymentsUnavailable()

        package_name = await self.package_name_for(credits)
        amount = credits * settings.CREDIT_UNIT_PRICE_CENTS

        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.create,
                amount=amount,
                currency=settings.CURRENCY,
                metadata={
                    "userId": str(user.id),
                    "credits": str(credits),
                    "packageName": package_name,
                },
                api_key=secret_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent for user {user.id}: {e}")
            raise PaymentProviderError()

        logger.info(f"Payment intent {intent['id']} created for user {user.id} ({credits} credits)")
        return {"client_secret": intent["client_secret"]}

    async def handle_webhook(self, payload: bytes, sig_header: Optional[str]) -> bool:
        """Verify and apply a Stripe event. Returns True if credits were granted."""
        webhook_secret = await self.settings_store.resolve("STRIPE_WEBHOOK_SECRET")
        if not webhook_secret or not sig_header:
            logger.warning("Webhook rejected: missing signature header or webhook secret")
            raise InvalidSignature()

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), sig_header, webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
            event = json.loads(payload)
            if not isinstance(event, dict):
                raise ValueError("event is not an object")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise InvalidSignature()
        except (UnicodeDecodeError, ValueError):
            logger.warning("Webhook rejected: invalid payload")
            raise InvalidSignature("Webhook Error: payload inválido")

        if event.get("type") != "payment_intent.succeeded":
            logger.info(f"Ignoring Stripe event {event.get('type')}")
            return False

        data = event.get("data")
        intent = data.get("object") if isinstance(data, dict) else None
        if not isinstance(intent, dict):
            logger.error(f"Stripe event {event.get('id')} has no payment intent object")
            return False
        return await self.apply_payment_intent(intent)

    async def apply_payment_intent(self, intent: dict) -> bool:
        metadata = intent.get("metadata") or {}
        intent_id = intent.get("id")
        try:
            user_id = int(metadata["userId"])
            credits = int(metadata["credits"])
        except (KeyError, TypeError, ValueError):
            logger.error(f"Payment intent {intent_id} has invalid metadata: {metadata}")
            return False
        if not intent_id or credits <= 0:
            logger.error(f"Payment intent {intent_id} ignored (credits={credits})")
            return False

        user = await self.db.get(User, user_id)
        if user is None:
            logger.error(f"Payment intent {intent_id} references unknown user {user_id}")
            return False

        # The purchase insert is the idempotency boundary: a redelivered event
        # hits the unique constraint and the whole transaction is dropped.
        purchase = CreditPurchase(
            user_id=user_id,
            package_name=metadata.get("packageName") or f"{credits} créditos",
            credits_purchased=credits,
            amount_paid_cents=int(intent.get("amount_received") or intent.get("amount") or 0),
            currency=intent.get("currency") or settings.CURRENCY,
            stripe_payment_intent_id=intent_id,
        )
        try:
            self.db.add(purchase)
            await self.db.flush()
            await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(credits=User.credits + credits)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Payment intent {intent_id} already applied, skipping")
            return False

        logger.info(f"Credited {credits} credits to user {user_id} for {intent_id}")
        return True

    async def list_purchases(self, user_id: int) -> List[CreditPurchase]:
        result = await self.db.execute(
            select(CreditPurchase)
            .where(CreditPurchase.user_id == user_id)
            .order_by(CreditPurchase.created_at.desc(), CreditPurchase.id.desc())
        )
        return list(result.scalars().all())
