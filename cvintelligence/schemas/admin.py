# ============================================================================
# schemas/admin.py - Admin Dashboard Schemas
# ============================================================================

from typing import List
from pydantic import EmailStr
from cvintelligence.schemas.base import CamelModel


class PackagePurchaseCount(CamelModel):
    name: str
    count: int


class DashboardData(CamelModel):
    total_users: int
    new_users_today: int
    total_analyses: int
    analyses_today: int
    average_score: int
    total_revenue_cents: int
    package_purchases: List[PackagePurchaseCount]


class UserStatsBucket(CamelModel):
    date: str
    current: int
    previous: int


class TestEmailRequest(CamelModel):
    to: EmailStr
