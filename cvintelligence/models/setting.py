from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func
from cvintelligence.core.database import Base

class AppSetting(Base):
    __tablename__ = "app_settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
