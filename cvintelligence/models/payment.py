from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cvintelligence.core.database import Base

class CreditPurchase(Base):
    __tablename__ = "credit_purchases"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    package_name = Column(String, nullable=False)
    credits_purchased = Column(Integer, nullable=False)
    amount_paid_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default="brl")
    # Stripe may redeliver the same event; this constraint makes crediting idempotent
    stripe_payment_intent_id = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="purchases")
