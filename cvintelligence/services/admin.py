# ============================================================================
# services/admin.py - Admin Dashboard Queries
# ============================================================================

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Tuple
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from cvintelligence.models.analysis import CvAnalysis
from cvintelligence.models.payment import CreditPurchase
from cvintelligence.models.user import User

logger = logging.getLogger(__name__)

# Number of buckets shown per period
PERIOD_BUCKETS = {"day": 7, "week": 8, "month": 12}


def _to_date(value) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, str):
        return datetime.fromisoformat(value).date()
    return value


def _add_months(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) + months
    return date(month_index // 12, month_index % 12 + 1, 1)


def bucket_start(day: date, period: str) -> date:
    if period == "day":
        return day
    if period == "week":
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def shift(day: date, period: str, steps: int) -> date:
    if period == "day":
        return day + timedelta(days=steps)
    if period == "week":
        return day + timedelta(weeks=steps)
    return _add_months(day, steps)


def bucket_label(day: date, period: str) -> str:
    if period == "day":
        return day.strftime("%d/%m")
    if period == "week":
        return f"Sem {day.isocalendar()[1]:02d}"
    return day.strftime("%m/%Y")


def build_user_stats(created: List[date], period: str, today: date) -> List[Dict]:
    """Count sign-ups per bucket for the current window and the window before it."""
    size = PERIOD_BUCKETS[period]
    last = bucket_start(today, period)
    starts = [shift(last, period, -offset) for offset in range(size - 1, -1, -1)]

    counts: Dict[date, int] = {}
    for day in created:
        start = bucket_start(day, period)
        counts[start] = counts.get(start, 0) + 1

    return [
        {
            "date": bucket_label(start, period),
            "current": counts.get(start, 0),
            "previous": counts.get(shift(start, period, -size), 0),
        }
        for start in starts
    ]


class AdminService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count(self, stmt) -> int:
        return int((await self.db.execute(stmt)).scalar_one() or 0)

    def _timestamp_param(self, value: datetime) -> datetime:
        # SQLite stores naive UTC timestamps
        if self.db.get_bind().dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    async def dashboard_data(self) -> dict:
        start_of_today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        today_filter = self._timestamp_param(start_of_today)

        average = (await self.db.execute(select(func.avg(CvAnalysis.score)))).scalar_one()
        revenue = await self._count(select(func.coalesce(func.sum(CreditPurchase.amount_paid_cents), 0)))
        packages = await self.db.execute(
            select(CreditPurchase.package_name, func.count(CreditPurchase.id))
            .group_by(CreditPurchase.package_name)
            .order_by(CreditPurchase.package_name)
        )

        return {
            "total_users": await self._count(select(func.count(User.id))),
            "new_users_today": await self._count(
                select(func.count(User.id)).where(User.created_at >= today_filter)
            ),
            "total_analyses": await self._count(select(func.count(CvAnalysis.id))),
            "analyses_today": await self._count(
                select(func.count(CvAnalysis.id)).where(CvAnalysis.created_at >= today_filter)
            ),
            "average_score": round(float(average)) if average is not None else 0,
            "total_revenue_cents": revenue,
            "package_purchases": [{"name": name, "count": count} for name, count in packages.all()],
        }

    async def user_stats(self, period: str) -> List[Dict]:
        today = datetime.now(timezone.utc).date()
        size = PERIOD_BUCKETS[period]
        window_start = shift(bucket_start(today, period), period, -(2 * size - 1))
        since = self._timestamp_param(
            datetime(window_start.year, window_start.month, window_start.day, tzinfo=timezone.utc)
        )

        result = await self.db.execute(select(User.created_at).where(User.created_at >= since))
        created = [_to_date(value) for value in result.scalars().all() if value is not None]
        return build_user_stats(created, period, today)

    async def db_status(self) -> Tuple[bool, str]:
        try:
            await self.db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database status check failed: {e}")
            return False, "Falha na conexão com o banco de dados"
        return True, "Conexão com o banco de dados operacional"
